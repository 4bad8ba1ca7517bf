"""Errors raised by the package builder."""

from __future__ import annotations

from pathlib import Path

from bundlr.core.errors import BundlrError
from bundlr.core.process.models import ProcessResult


class BuilderError(BundlrError):
    """Base class for package build failures."""


class SourceInvalidError(BuilderError):
    """The source tree is missing or not a directory."""

    def __init__(self, source: Path, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid package source {source}: {reason}")


class ManifestInvalidError(BuilderError):
    """The required package descriptor is missing or unreadable."""

    def __init__(self, source: Path, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Package descriptor invalid in {source}: {reason}")


class InsufficientDiskSpaceError(BuilderError):
    """The destination volume lacks room for staging plus the output package."""

    def __init__(self, destination: Path, required_bytes: int, available_bytes: int) -> None:
        self.destination = destination
        self.required_bytes = required_bytes
        self.available_bytes = available_bytes
        super().__init__(
            f"Insufficient disk space on {destination}: need {required_bytes / 1024**2:.1f} MB, "
            f"{available_bytes / 1024**2:.1f} MB available"
        )


class CopyFailedError(BuilderError):
    """Every copy strategy failed while staging a protected source."""

    def __init__(self, source: Path, attempts: list[str]) -> None:
        self.source = source
        self.attempts = attempts
        super().__init__(f"Could not copy {source}: " + "; ".join(attempts))


class BuildToolFailedError(BuilderError):
    """The packaging backend failed.

    ``diagnostic`` is the actionable explanation picked from the failure
    signature table; ``result`` is the full tool result when a process ran.
    """

    def __init__(
        self,
        backend: str,
        diagnostic: str,
        result: ProcessResult | None = None,
        kind: str = "unknown",
    ) -> None:
        self.backend = backend
        self.diagnostic = diagnostic
        self.result = result
        self.kind = kind
        detail = f" (exit code {result.exit_code})" if result is not None else ""
        super().__init__(f"{backend} failed{detail}: {diagnostic}")
