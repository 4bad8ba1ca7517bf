"""Errors raised by the dependency resolver."""

from __future__ import annotations

from pathlib import Path

from bundlr.core.errors import BundlrError


class ManifestNotFoundError(BundlrError):
    """No package manifest exists at the given package path."""

    def __init__(self, package_path: Path) -> None:
        self.package_path = package_path
        super().__init__(f"No package manifest found at {package_path}")
