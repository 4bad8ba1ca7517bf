"""Command-line interface for bundlr."""
