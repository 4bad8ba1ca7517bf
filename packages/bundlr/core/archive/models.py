"""Archive composition models and the orchestration manifest schema.

The orchestration manifest is consumed by an external installer script, so
its JSON keys are PascalCase and must not change. Models accept snake_case
field names in Python and serialize by alias.
"""

from __future__ import annotations

from enum import Enum
import zipfile

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_pascal

from bundlr.core.archive.certificates import CertificateInfo
from bundlr.core.dependencies.models import DependencyEntry
from bundlr.core.manifest.models import UNKNOWN, ManifestRecord


class CompressionLevel(str, Enum):
    """Archive compression level."""

    OPTIMAL = "optimal"
    FASTEST = "fastest"
    NONE = "none"

    def zip_settings(self) -> tuple[int, int | None]:
        """``(compression, compresslevel)`` arguments for ``zipfile.ZipFile``."""
        if self is CompressionLevel.NONE:
            return zipfile.ZIP_STORED, None
        if self is CompressionLevel.FASTEST:
            return zipfile.ZIP_DEFLATED, 1
        return zipfile.ZIP_DEFLATED, 9


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class PackageInfo(_WireModel):
    """Main package block of the orchestration manifest."""

    name: str
    version: str
    architecture: str
    publisher: str
    package_file: str | None = None
    certificate_file: str | None = None
    certificate_thumbprint: str | None = None
    publisher_display_name: str = UNKNOWN
    resource_id: str = ""
    is_bundle: bool = False
    is_development_mode: bool = False

    @property
    def identifier(self) -> str:
        return f"{self.name}_{self.version}_{self.architecture}"


class DependencyPackageInfo(PackageInfo):
    """Dependency block: the package shape plus ordering and resolution data."""

    install_order: int = Field(ge=1)
    min_version: str
    is_optional: bool = False
    dependency_type: str = "declared"
    is_installed: bool = False


class OrchestrationManifest(_WireModel):
    """``manifest.json`` at the root of a composed archive.

    ``installation_order`` lists every dependency identifier and then the
    main package identifier, with no duplicates.
    """

    manifest_version: str
    created_date: str
    main_package: PackageInfo
    dependencies: list[DependencyPackageInfo] = Field(default_factory=list)
    installation_order: list[str] = Field(default_factory=list)
    total_packages: int = 0
    total_size_bytes: int = 0
    total_size_mb: float = Field(default=0.0, alias="TotalSizeMB")
    compression_mode: CompressionLevel = CompressionLevel.OPTIMAL
    requires_elevation: bool = False
    minimum_platform_version: str
    minimum_runtime_version: str

    @model_validator(mode="after")
    def _check_installation_order(self) -> OrchestrationManifest:
        order = self.installation_order
        if len(order) != len(self.dependencies) + 1:
            raise ValueError(
                f"installation order has {len(order)} entries, "
                f"expected {len(self.dependencies) + 1}"
            )
        if order[-1] != self.main_package.identifier:
            raise ValueError("installation order must end with the main package")
        if len(set(order)) != len(order):
            raise ValueError("installation order contains duplicate identifiers")
        return self

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ManifestData(BaseModel):
    """What the composer needs to describe: the main package and its dependencies.

    Args:
        record: Manifest of the main package
        dependencies: Dependencies in installation order
        is_development_mode: Main package is signed with a development certificate
    """

    record: ManifestRecord
    dependencies: list[DependencyEntry] = Field(default_factory=list)
    is_development_mode: bool = False


class StagedCertificate(BaseModel):
    """A certificate file copied into the archive's ``Certificates/`` folder."""

    relative_path: str
    info: CertificateInfo | None = None


class ArchiveResult(BaseModel):
    """Outcome of a compose run."""

    output_path: str
    size_bytes: int
    package_count: int
    certificate_count: int
    manifest: OrchestrationManifest
    compression: CompressionLevel
    warnings: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0
