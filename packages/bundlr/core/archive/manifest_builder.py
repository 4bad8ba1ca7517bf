"""Builds the orchestration manifest from staged archive contents."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import PurePosixPath

from bundlr.core.archive.models import (
    CompressionLevel,
    DependencyPackageInfo,
    ManifestData,
    OrchestrationManifest,
    PackageInfo,
    StagedCertificate,
)
from bundlr.core.config.models import MIB, ArchiveConfig
from bundlr.core.dependencies.models import DependencyEntry
from bundlr.core.manifest.models import UNKNOWN
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
BUNDLE_SUFFIXES = (".msixbundle", ".appxbundle")


def file_matches(relative_path: str, name: str, version: str | None = None) -> bool:
    """True if a package file name belongs to ``name`` (and ``version`` when given).

    File names follow ``{name}_{version}_{arch}[_{resource}_{publisher_id}].ext``.

    Example:
        >>> file_matches("Packages/Contoso.App_1.2.0.0_x64.msix", "Contoso.App", "1.2.0.0")
        True
    """
    stem = PurePosixPath(relative_path).stem.lower()
    prefix = name.lower()
    if stem != prefix and not stem.startswith(prefix + "_"):
        return False
    if version is None:
        return True
    # The version is the whole segment after the name, never a prefix of it.
    return stem[len(prefix) + 1 :].split("_")[0] == version.lower()


def _claim(
    files: Sequence[str], claimed: set[str], name: str, version: str | None
) -> str | None:
    for candidate in files:
        if candidate not in claimed and file_matches(candidate, name, version):
            claimed.add(candidate)
            return candidate
    return None


def _certificate_for(
    certificates: Sequence[StagedCertificate], name: str, publisher: str
) -> StagedCertificate | None:
    for cert in certificates:
        if PurePosixPath(cert.relative_path).stem.lower() == name.lower():
            return cert
    for cert in certificates:
        if cert.info is not None and cert.info.matches_publisher(publisher):
            return cert
    return None


def _dependency_info(
    entry: DependencyEntry,
    order: int,
    package_file: str | None,
    certificate: StagedCertificate | None,
) -> DependencyPackageInfo:
    return DependencyPackageInfo(
        name=entry.name,
        version=entry.version,
        architecture=entry.architecture,
        publisher=entry.publisher,
        package_file=package_file,
        certificate_file=certificate.relative_path if certificate else None,
        certificate_thumbprint=certificate.info.thumbprint
        if certificate and certificate.info
        else None,
        publisher_display_name=UNKNOWN,
        is_bundle=bool(package_file and package_file.lower().endswith(BUNDLE_SUFFIXES)),
        install_order=order,
        min_version=entry.min_version,
        is_optional=entry.is_optional,
        dependency_type=entry.dependency_type.value,
        is_installed=entry.is_installed,
    )


def build_orchestration_manifest(
    data: ManifestData,
    package_files: Sequence[str],
    certificates: Sequence[StagedCertificate],
    total_size_bytes: int,
    compression: CompressionLevel = CompressionLevel.OPTIMAL,
    config: ArchiveConfig | None = None,
    now: datetime | None = None,
) -> tuple[OrchestrationManifest, list[str]]:
    """Describe the staged archive for the installer.

    The main package file is matched by name and version, falling back to the
    first staged package file. Dependency files are matched by name and
    version, then by name; unmatched dependencies get ``None``. Dependencies
    repeating an earlier identifier (or the main package) are dropped. Each
    fallback is reported as a warning.

    Args:
        data: Main manifest and ordered dependencies
        package_files: Staged package paths relative to the archive root
        certificates: Staged certificates
        total_size_bytes: Combined size of the staged package files
        compression: Compression the archive is written with
        config: Archive settings (versions, elevation flag)
        now: Creation time (defaults to the current UTC time)

    Returns:
        The manifest and the warnings raised while matching files
    """
    config = config or ArchiveConfig()
    created = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
    identity = data.record.identity
    warnings: list[str] = []
    claimed: set[str] = set()
    files = sorted(package_files)

    main_file = _claim(files, claimed, identity.name, identity.version)
    if main_file is None and files:
        main_file = files[0]
        claimed.add(main_file)
        warnings.append(
            f"No package file matches {identity.name} {identity.version}; using {main_file}"
        )
    elif main_file is None:
        warnings.append(f"No package file staged for {identity.name}")

    main_cert = _certificate_for(certificates, identity.name, identity.publisher)
    if main_cert is None and certificates:
        main_cert = certificates[0]
        warnings.append(
            f"No certificate matches {identity.publisher}; using {main_cert.relative_path}"
        )

    dependencies: list[DependencyPackageInfo] = []
    seen = {f"{identity.name}_{identity.version}_{identity.architecture}"}
    for entry in data.dependencies:
        if entry.identifier in seen:
            warnings.append(f"Duplicate dependency {entry.identifier} skipped")
            continue
        seen.add(entry.identifier)
        order = len(dependencies) + 1
        package_file = _claim(files, claimed, entry.name, entry.version) or _claim(
            files, claimed, entry.name, None
        )
        if package_file is None:
            warnings.append(f"No package file found for dependency {entry.identifier}")
        certificate = _certificate_for(certificates, entry.name, entry.publisher)
        dependencies.append(_dependency_info(entry, order, package_file, certificate))

    main = PackageInfo(
        name=identity.name,
        version=identity.version,
        architecture=identity.architecture,
        publisher=identity.publisher,
        package_file=main_file,
        certificate_file=main_cert.relative_path if main_cert else None,
        certificate_thumbprint=main_cert.info.thumbprint
        if main_cert and main_cert.info
        else None,
        publisher_display_name=data.record.publisher_display_name,
        resource_id=identity.resource_id,
        is_bundle=data.record.is_bundle,
        is_development_mode=data.is_development_mode,
    )

    for message in warnings:
        logger.warning(message)

    manifest = OrchestrationManifest(
        manifest_version=config.manifest_version,
        created_date=created,
        main_package=main,
        dependencies=dependencies,
        installation_order=[d.identifier for d in dependencies] + [main.identifier],
        total_packages=len(dependencies) + 1,
        total_size_bytes=total_size_bytes,
        total_size_mb=round(total_size_bytes / MIB, 2),
        compression_mode=compression,
        requires_elevation=config.requires_elevation,
        minimum_platform_version=data.record.minimum_platform_version
        or config.minimum_platform_version,
        minimum_runtime_version=config.minimum_runtime_version,
    )
    return manifest, warnings
