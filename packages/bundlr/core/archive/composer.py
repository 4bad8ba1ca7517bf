"""Assembles the distributable archive: packages, certificates, plan and instructions."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import shutil
import time
import zipfile

from pydantic import ValidationError

from bundlr.core.archive.certificates import (
    CERTIFICATE_EXTENSIONS,
    CertificateError,
    CertificateInfo,
    read_certificate,
)
from bundlr.core.archive.instructions import INSTRUCTIONS_FILE, render_instructions
from bundlr.core.archive.manifest_builder import build_orchestration_manifest
from bundlr.core.archive.models import (
    ArchiveResult,
    CompressionLevel,
    ManifestData,
    StagedCertificate,
)
from bundlr.core.config.models import MIB, ArchiveConfig
from bundlr.core.errors import BundlrError
from bundlr.core.utils.fs import iter_files, make_scratch_dir, remove_tree
from bundlr.core.utils.json import write_json
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

PACKAGES_DIR = "Packages"
CERTIFICATES_DIR = "Certificates"
MANIFEST_FILE = "manifest.json"
PACKAGE_EXTENSIONS = frozenset({".msix", ".appx", ".msixbundle", ".appxbundle", ".zip"})


class ArchiveError(BundlrError):
    """The archive could not be composed."""


class ArchiveComposer:
    """Builds the final archive from a directory of packages and certificates.

    Archive layout::

        Packages/        package files
        Certificates/    certificate files
        manifest.json    orchestration manifest
        INSTALL.md       installation instructions

    Args:
        config: Archive settings
        scratch_parent: Parent directory for the staging tree
        cleanup_attempts: Removal attempts for the staging tree

    Example:
        >>> composer = ArchiveComposer()
        >>> result = composer.compose("staging", "out/Contoso.App.zip", ManifestData(record=rec))
        >>> result.package_count
        3
    """

    def __init__(
        self,
        config: ArchiveConfig | None = None,
        scratch_parent: Path | None = None,
        cleanup_attempts: int = 5,
    ) -> None:
        self.config = config or ArchiveConfig()
        self.scratch_parent = scratch_parent
        self.cleanup_attempts = cleanup_attempts

    def compose(
        self,
        source_dir: Path | str,
        output_path: Path | str,
        manifest_data: ManifestData,
        compression_level: CompressionLevel | str | None = None,
        now: datetime | None = None,
    ) -> ArchiveResult:
        """Compose the archive at ``output_path`` from files in ``source_dir``.

        Package and certificate files are picked up anywhere below
        ``source_dir``; other files are ignored.

        Raises:
            ArchiveError: If ``source_dir`` is not a directory or writing fails
        """
        source = Path(source_dir)
        output = Path(output_path)
        if not source.is_dir():
            raise ArchiveError(f"Archive source {source} is not a directory")
        compression = CompressionLevel(compression_level or self.config.compression)
        started = time.monotonic()

        scratch = make_scratch_dir("bundlr-archive-", self.scratch_parent)
        try:
            packages, certificates, total_size, warnings = self._stage(source, scratch, output)
            manifest, match_warnings = build_orchestration_manifest(
                manifest_data,
                packages,
                certificates,
                total_size,
                compression=compression,
                config=self.config,
                now=now,
            )
            warnings.extend(match_warnings)

            write_json(scratch / MANIFEST_FILE, manifest.to_json_dict())
            (scratch / INSTRUCTIONS_FILE).write_text(
                render_instructions(manifest, [c.relative_path for c in certificates]),
                encoding="utf-8",
            )
            self._zip(scratch, output, compression)
        except OSError as e:
            raise ArchiveError(f"Cannot compose archive {output}: {e}") from e
        except ValidationError as e:
            raise ArchiveError(f"Invalid orchestration manifest for {output}: {e}") from e
        finally:
            if not remove_tree(scratch, attempts=self.cleanup_attempts):
                logger.warning(f"Archive staging directory {scratch} left behind")

        size = output.stat().st_size
        logger.info(
            f"Composed {output}: {len(packages)} packages, {len(certificates)} certificates, "
            f"{size / MIB:.1f} MB"
        )
        return ArchiveResult(
            output_path=str(output),
            size_bytes=size,
            package_count=len(packages),
            certificate_count=len(certificates),
            manifest=manifest,
            compression=compression,
            warnings=warnings,
            duration_seconds=round(time.monotonic() - started, 3),
        )

    def _stage(
        self, source: Path, scratch: Path, output: Path
    ) -> tuple[list[str], list[StagedCertificate], int, list[str]]:
        packages_dir = scratch / PACKAGES_DIR
        certs_dir = scratch / CERTIFICATES_DIR
        packages_dir.mkdir()
        certs_dir.mkdir()

        packages: list[str] = []
        certificates: list[StagedCertificate] = []
        warnings: list[str] = []
        total_size = 0
        skip = output.resolve()
        for path in iter_files(source):
            if path.resolve() == skip:
                continue
            suffix = path.suffix.lower()
            if suffix in PACKAGE_EXTENSIONS:
                target = packages_dir / path.name
                if target.exists():
                    warnings.append(f"Duplicate package file name {path.name} skipped")
                    continue
                shutil.copy2(path, target)
                total_size += target.stat().st_size
                packages.append(f"{PACKAGES_DIR}/{path.name}")
            elif suffix in CERTIFICATE_EXTENSIONS:
                target = certs_dir / path.name
                if target.exists():
                    warnings.append(f"Duplicate certificate file name {path.name} skipped")
                    continue
                shutil.copy2(path, target)
                certificates.append(
                    StagedCertificate(
                        relative_path=f"{CERTIFICATES_DIR}/{path.name}",
                        info=self._read_certificate(target, warnings),
                    )
                )

        logger.debug(f"Staged {len(packages)} packages and {len(certificates)} certificates")
        if not packages:
            warnings.append(f"No package files found in {source}")
        return packages, certificates, total_size, warnings

    @staticmethod
    def _read_certificate(path: Path, warnings: list[str]) -> CertificateInfo | None:
        try:
            return read_certificate(path)
        except CertificateError as e:
            warnings.append(f"Certificate {path.name} is unreadable: {e.reason}")
            return None

    @staticmethod
    def _zip(scratch: Path, output: Path, compression: CompressionLevel) -> None:
        method, level = compression.zip_settings()
        output.parent.mkdir(parents=True, exist_ok=True)
        tmp = output.with_name(output.name + ".partial")
        try:
            with zipfile.ZipFile(tmp, "w", compression=method, compresslevel=level) as zf:
                for directory in (PACKAGES_DIR, CERTIFICATES_DIR):
                    zf.writestr(f"{directory}/", b"")
                for path in iter_files(scratch):
                    zf.write(path, path.relative_to(scratch).as_posix())
            tmp.replace(output)
        finally:
            tmp.unlink(missing_ok=True)
