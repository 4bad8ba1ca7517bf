"""Distributable archive composition.

Example:
    >>> from bundlr.core.archive import ArchiveComposer, ManifestData
    >>> result = ArchiveComposer().compose("staging", "Contoso.App.zip", ManifestData(record=rec))
    >>> result.manifest.installation_order[-1]
    'Contoso.App_1.2.0.0_x64'
"""

from bundlr.core.archive.certificates import (
    CERTIFICATE_EXTENSIONS,
    CertificateError,
    CertificateInfo,
    CertificateSource,
    DirectoryCertificateSource,
    read_certificate,
)
from bundlr.core.archive.composer import (
    CERTIFICATES_DIR,
    MANIFEST_FILE,
    PACKAGE_EXTENSIONS,
    PACKAGES_DIR,
    ArchiveComposer,
    ArchiveError,
)
from bundlr.core.archive.instructions import INSTRUCTIONS_FILE, render_instructions
from bundlr.core.archive.manifest_builder import build_orchestration_manifest, file_matches
from bundlr.core.archive.models import (
    ArchiveResult,
    CompressionLevel,
    DependencyPackageInfo,
    ManifestData,
    OrchestrationManifest,
    PackageInfo,
    StagedCertificate,
)

__all__ = [
    # Composer
    "ArchiveComposer",
    "ArchiveResult",
    "CompressionLevel",
    "ManifestData",
    "PACKAGES_DIR",
    "CERTIFICATES_DIR",
    "MANIFEST_FILE",
    "INSTRUCTIONS_FILE",
    "PACKAGE_EXTENSIONS",
    # Orchestration manifest
    "OrchestrationManifest",
    "PackageInfo",
    "DependencyPackageInfo",
    "StagedCertificate",
    "build_orchestration_manifest",
    "file_matches",
    "render_instructions",
    # Certificates
    "CERTIFICATE_EXTENSIONS",
    "CertificateInfo",
    "CertificateSource",
    "DirectoryCertificateSource",
    "read_certificate",
    # Errors
    "ArchiveError",
    "CertificateError",
]
