"""Errors raised while reading package manifests."""

from __future__ import annotations

from pathlib import Path

from bundlr.core.errors import BundlrError


class ManifestError(BundlrError):
    """Base class for manifest reading failures."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class DocumentNotFoundError(ManifestError):
    """The manifest document does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Manifest document not found: {path}", path)


class InvalidDocumentError(ManifestError):
    """The document is not XML, has no root, or has an unexpected root element."""


class IdentityMissingError(ManifestError):
    """No Identity element was found by any lookup strategy."""

    def __init__(self, path: Path | None) -> None:
        super().__init__(f"No Identity element found in manifest: {path or '<string>'}", path)
