"""Test suite for bundlr.

Test Structure:
- unit/: Unit tests per component (process, manifest, dependencies, builder,
  archive, backup, cli, config, utils)
- conftest.py: Shared fixtures (manifest factories, inventories, certificates)

Tests that need an external tool run a ``sys.executable`` script in its place.
"""
