"""Package builder options and results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from bundlr.core.process.models import ProcessResult


class BackendKind(str, Enum):
    """Packaging backend that produced an artifact."""

    SDK = "sdk"
    ARCHIVE = "archive"


class BuildOptions(BaseModel):
    """Per-build options.

    Args:
        validate_manifest: Require the descriptor and check referenced assets
        overwrite: Replace an existing output file
        allow_fallback: Use the plain archive backend when the SDK tool is missing
        skip_tool_validation: Ask the SDK tool to skip its own semantic validation
        force_staging: Always copy the source to a scratch directory first
    """

    model_config = ConfigDict(frozen=True)

    validate_manifest: bool = True
    overwrite: bool = True
    allow_fallback: bool = True
    skip_tool_validation: bool = False
    force_staging: bool = False


class PackageResult(BaseModel):
    """Outcome of a successful build."""

    output_path: str
    backend: BackendKind
    production_ready: bool
    size_bytes: int = 0
    duration_seconds: float = 0.0
    staged: bool = False
    copy_strategy: str | None = None
    warnings: list[str] = Field(default_factory=list)
    tool_result: ProcessResult | None = None
