"""Package manifest reading.

Example:
    >>> from bundlr.core.manifest import ManifestReader
    >>> record = ManifestReader().parse("unpacked/AppxManifest.xml", include_capabilities=False)
    >>> [d.name for d in record.dependencies]
    ['Microsoft.VCLibs.140.00']
"""

from bundlr.core.manifest.errors import (
    DocumentNotFoundError,
    IdentityMissingError,
    InvalidDocumentError,
    ManifestError,
)
from bundlr.core.manifest.models import (
    ApplicationEntry,
    DeclaredDependency,
    ManifestRecord,
    PackageIdentity,
    TargetDeviceFamily,
    normalize_version,
    publisher_id,
    version_key,
)
from bundlr.core.manifest.reader import (
    PACKAGE_MANIFEST,
    ManifestReader,
    detect_modern_format,
    locate_manifest,
)
from bundlr.core.manifest.strategies import Lookup, find_elements

__all__ = [
    # Reader
    "ManifestReader",
    "PACKAGE_MANIFEST",
    "detect_modern_format",
    "locate_manifest",
    "Lookup",
    "find_elements",
    # Models
    "ApplicationEntry",
    "DeclaredDependency",
    "ManifestRecord",
    "PackageIdentity",
    "TargetDeviceFamily",
    "normalize_version",
    "publisher_id",
    "version_key",
    # Errors
    "ManifestError",
    "DocumentNotFoundError",
    "InvalidDocumentError",
    "IdentityMissingError",
]
