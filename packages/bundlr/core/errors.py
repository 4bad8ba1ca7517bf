"""Base exception for bundlr."""

from __future__ import annotations


class BundlrError(Exception):
    """Base class for every error raised by bundlr.core.

    Subsystems define their own subclasses (process, manifest, dependencies,
    builder, archive) so callers can catch one family or all of them.
    """
