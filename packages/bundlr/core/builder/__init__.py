"""Package building from unpacked trees.

Example:
    >>> from bundlr.core.builder import BuildOptions, PackageBuilder
    >>> result = PackageBuilder().build("unpacked/Contoso.App", "out/Contoso.App.msix")
    >>> result.backend
    <BackendKind.SDK: 'sdk'>
"""

from bundlr.core.builder.backends import ArchiveBackend, MakeAppxBackend, PackagingBackend
from bundlr.core.builder.builder import PackageBuilder, asset_exists
from bundlr.core.builder.content_types import (
    CONTENT_TYPES_FILE,
    build_content_types_xml,
    ensure_content_types,
)
from bundlr.core.builder.diagnostics import (
    FAILURE_SIGNATURES,
    Diagnosis,
    diagnose,
    diagnosis_for,
)
from bundlr.core.builder.errors import (
    BuilderError,
    BuildToolFailedError,
    CopyFailedError,
    InsufficientDiskSpaceError,
    ManifestInvalidError,
    SourceInvalidError,
)
from bundlr.core.builder.models import BackendKind, BuildOptions, PackageResult
from bundlr.core.builder.staging import (
    SIGNATURE_ARTIFACTS,
    SourceStager,
    remove_signature_artifacts,
    staging_reasons,
)

__all__ = [
    # Builder
    "PackageBuilder",
    "BuildOptions",
    "PackageResult",
    "BackendKind",
    "asset_exists",
    # Backends
    "PackagingBackend",
    "MakeAppxBackend",
    "ArchiveBackend",
    # Staging
    "SourceStager",
    "SIGNATURE_ARTIFACTS",
    "remove_signature_artifacts",
    "staging_reasons",
    "CONTENT_TYPES_FILE",
    "build_content_types_xml",
    "ensure_content_types",
    # Diagnostics
    "Diagnosis",
    "FAILURE_SIGNATURES",
    "diagnose",
    "diagnosis_for",
    # Errors
    "BuilderError",
    "SourceInvalidError",
    "ManifestInvalidError",
    "InsufficientDiskSpaceError",
    "CopyFailedError",
    "BuildToolFailedError",
]
