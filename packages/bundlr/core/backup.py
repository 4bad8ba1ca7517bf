"""End-to-end backup: an installed package plus its dependencies in one archive."""

from __future__ import annotations

from pathlib import Path
import shutil

from pydantic import BaseModel, Field

from bundlr.core.archive import (
    ArchiveComposer,
    ArchiveResult,
    CertificateSource,
    CompressionLevel,
    ManifestData,
)
from bundlr.core.builder import BuilderError, BuildOptions, PackageBuilder, PackageResult
from bundlr.core.config.models import AppConfig
from bundlr.core.context import ToolContext
from bundlr.core.dependencies import (
    CommandInventory,
    DependencyEntry,
    DependencyResolver,
    DependencyResult,
    InventoryProvider,
    ResolveOptions,
)
from bundlr.core.dependencies.errors import ManifestNotFoundError
from bundlr.core.io import validate_path
from bundlr.core.manifest import ManifestReader, ManifestRecord, locate_manifest
from bundlr.core.process import ProcessError, ProcessRunner
from bundlr.core.utils.fs import make_scratch_dir, remove_tree
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)


class BackupOptions(BaseModel):
    """Options for one backup run."""

    include_dependencies: bool = True
    include_optional: bool = False
    recursive: bool = True
    max_depth: int = Field(default=3, ge=0)
    compression: CompressionLevel | None = None
    is_development_mode: bool = False
    build: BuildOptions = Field(default_factory=BuildOptions)


class BackupResult(BaseModel):
    """Outcome of a backup run."""

    archive: ArchiveResult
    main_package: PackageResult
    dependency_packages: list[PackageResult] = Field(default_factory=list)
    dependencies: DependencyResult | None = None
    warnings: list[str] = Field(default_factory=list)


def package_file_name(name: str, version: str, architecture: str, is_bundle: bool = False) -> str:
    extension = ".msixbundle" if is_bundle else ".msix"
    return f"{name}_{version}_{architecture}{extension}"


class BackupService:
    """Packages an installed application and its installed dependencies into one archive.

    Dependencies that are not installed or fail to build are reported as
    warnings; the archive still lists them so the installer can fetch them.

    Args:
        config: Application configuration
        runner: Process runner shared by the builder and inventory; the default
            resolves tools through ``config.tools``
        inventory: Installed-package inventory (``CommandInventory`` by default)
        certificates: Where signing certificates are looked up (optional)
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        runner: ProcessRunner | None = None,
        inventory: InventoryProvider | None = None,
        certificates: CertificateSource | None = None,
        builder: PackageBuilder | None = None,
        composer: ArchiveComposer | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.runner = runner or ProcessRunner(self.config.process, ToolContext(self.config.tools))
        self.reader = ManifestReader()
        self.inventory = inventory or CommandInventory(
            self.runner, self.config.dependencies.inventory_command
        )
        self.resolver = DependencyResolver(
            self.inventory, self.reader, self.config.dependencies.framework_patterns
        )
        self.builder = builder or PackageBuilder(self.config.builder, self.runner)
        scratch = self.config.builder.scratch_dir
        self.composer = composer or ArchiveComposer(
            self.config.archive,
            scratch_parent=Path(scratch) if scratch else None,
            cleanup_attempts=self.config.builder.cleanup_attempts,
        )
        self.certificates = certificates

    def backup(
        self,
        package_path: Path | str,
        output_path: Path | str,
        options: BackupOptions | None = None,
    ) -> BackupResult:
        """Back up the package at ``package_path`` into the archive ``output_path``.

        Raises:
            PathValidationError: If either path is invalid
            ManifestNotFoundError: If the package has no manifest
            ManifestError: If the main manifest cannot be read
            BuilderError: If the main package cannot be built
            ArchiveError: If the archive cannot be written
        """
        options = options or BackupOptions()
        source = validate_path(package_path, must_exist=True)
        output = validate_path(output_path)

        manifest = locate_manifest(source)
        if manifest is None:
            raise ManifestNotFoundError(source)
        record = self.reader.parse(manifest, include_capabilities=False)
        identity = record.identity
        logger.info(f"Backing up {identity.name} {identity.version} from {source}")

        warnings: list[str] = []
        resolution: DependencyResult | None = None
        dependencies: list[DependencyEntry] = []
        if options.include_dependencies:
            resolution = self.resolver.resolve(
                source,
                ResolveOptions(
                    include_optional=options.include_optional,
                    recursive=options.recursive,
                    max_depth=options.max_depth,
                ),
            )
            warnings.extend(resolution.warnings)
            dependencies = resolution.ordered()

        scratch_parent = self.config.builder.scratch_dir
        staging = make_scratch_dir(
            "bundlr-backup-", Path(scratch_parent) if scratch_parent else None
        )
        try:
            main_file = staging / package_file_name(
                identity.name, identity.version, identity.architecture, record.is_bundle
            )
            main_result = self.builder.build(source, main_file, options.build)
            warnings.extend(main_result.warnings)

            built = self._build_dependencies(dependencies, staging, options, warnings)
            self._copy_certificates(record, dependencies, staging, warnings)

            archive = self.composer.compose(
                staging,
                output,
                ManifestData(
                    record=record,
                    dependencies=dependencies,
                    is_development_mode=options.is_development_mode,
                ),
                options.compression,
            )
            warnings.extend(archive.warnings)
        finally:
            remove_tree(
                staging,
                attempts=self.config.builder.cleanup_attempts,
                base_delay_seconds=self.config.builder.cleanup_base_delay_seconds,
            )

        logger.info(
            f"Backup of {identity.name} written to {output} "
            f"({len(built)} of {len(dependencies)} dependencies packaged, "
            f"{len(warnings)} warnings)"
        )
        return BackupResult(
            archive=archive,
            main_package=main_result,
            dependency_packages=built,
            dependencies=resolution,
            warnings=warnings,
        )

    def _build_dependencies(
        self,
        dependencies: list[DependencyEntry],
        staging: Path,
        options: BackupOptions,
        warnings: list[str],
    ) -> list[PackageResult]:
        built: list[PackageResult] = []
        for entry in dependencies:
            if not entry.is_installed or not entry.install_location:
                message = (
                    f"Dependency {entry.name} is not installed; "
                    "it must be installed separately"
                )
                logger.warning(message)
                warnings.append(message)
                continue
            target = staging / package_file_name(entry.name, entry.version, entry.architecture)
            try:
                result = self.builder.build(entry.install_location, target, options.build)
            except (BuilderError, ProcessError) as e:
                message = f"Dependency {entry.name} could not be packaged: {e}"
                logger.warning(message)
                warnings.append(message)
                continue
            warnings.extend(result.warnings)
            built.append(result)
        return built

    def _copy_certificates(
        self,
        record: ManifestRecord,
        dependencies: list[DependencyEntry],
        staging: Path,
        warnings: list[str],
    ) -> None:
        if self.certificates is None:
            return
        wanted = [(record.identity.name, record.identity.publisher)]
        wanted.extend((d.name, d.publisher) for d in dependencies)
        copied: set[Path] = set()
        for name, publisher in wanted:
            path = self.certificates.find(name, publisher)
            if path is None:
                warnings.append(f"No certificate found for {name}")
                continue
            if path in copied:
                continue
            shutil.copy2(path, staging / path.name)
            copied.add(path)
