"""Turns an unpacked package tree into a package file."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path, PureWindowsPath
import shutil
import time

from bundlr.core.builder.backends import ArchiveBackend, MakeAppxBackend, PackagingBackend
from bundlr.core.builder.content_types import ensure_content_types
from bundlr.core.builder.diagnostics import diagnosis_for
from bundlr.core.builder.errors import (
    BuildToolFailedError,
    InsufficientDiskSpaceError,
    ManifestInvalidError,
    SourceInvalidError,
)
from bundlr.core.builder.models import BuildOptions, PackageResult
from bundlr.core.builder.staging import (
    SourceStager,
    remove_signature_artifacts,
    staging_reasons,
)
from bundlr.core.config.models import MIB, BuilderConfig
from bundlr.core.context import ToolContext
from bundlr.core.manifest import ManifestError, ManifestReader, locate_manifest
from bundlr.core.parsers.xml import XMLParser, local_name
from bundlr.core.process import ProcessRunner
from bundlr.core.utils.fs import directory_size, make_scratch_dir, remove_tree
from bundlr.core.utils.logging import get_logger, log_duration

logger = get_logger(__name__)

FreeSpaceFn = Callable[[Path], int]


def _disk_free(path: Path) -> int:
    return shutil.disk_usage(path).free


def _existing_ancestor(path: Path) -> Path:
    current = path.resolve()
    while not current.exists() and current.parent != current:
        current = current.parent
    return current


def _logo_references(manifest: Path) -> list[str]:
    """Asset paths referenced by logo/image attributes and Logo elements."""
    doc = XMLParser().parse(manifest)
    refs: list[str] = []
    for element in doc.root.iter():
        if local_name(element.tag) == "Logo" and element.text and element.text.strip():
            refs.append(element.text.strip())
        for key, value in element.attrib.items():
            name = local_name(key)
            if value and (name.endswith("Logo") or name == "Image"):
                refs.append(value)
    return list(dict.fromkeys(refs))


def asset_exists(root: Path, reference: str) -> bool:
    """True if ``reference`` or a scale/target-size qualified variant exists.

    ``Assets\\StoreLogo.png`` is satisfied by ``Assets/StoreLogo.scale-200.png``
    or ``Assets/scale-200/StoreLogo.png``.
    """
    relative = Path(*PureWindowsPath(reference).parts)
    target = root / relative
    if target.is_file():
        return True
    parent = target.parent
    if not parent.is_dir():
        return False
    if any(parent.glob(f"{target.stem}.*{target.suffix}")):
        return True
    return any(parent.glob(f"*/{target.name}"))


class PackageBuilder:
    """Builds package files with the SDK tool, falling back to a plain archive.

    Args:
        config: Builder settings (disk-space rule, protected roots, cleanup)
        runner: Process runner used for the packaging and copy tools
        tools: Tool lookup; defaults to the runner's
        free_space: Returns free bytes for a directory (injectable for tests)

    Example:
        >>> builder = PackageBuilder()
        >>> result = builder.build("unpacked/Contoso.App", "out/Contoso.App.msix")
        >>> result.production_ready
        True
    """

    def __init__(
        self,
        config: BuilderConfig | None = None,
        runner: ProcessRunner | None = None,
        tools: ToolContext | None = None,
        free_space: FreeSpaceFn | None = None,
        reader: ManifestReader | None = None,
    ) -> None:
        self.config = config or BuilderConfig()
        self.runner = runner or ProcessRunner(tools=tools)
        self.tools = tools or self.runner.tools
        self.free_space = free_space or _disk_free
        self.reader = reader or ManifestReader()

    def build(
        self,
        source_tree: Path | str,
        output_path: Path | str,
        options: BuildOptions | None = None,
    ) -> PackageResult:
        """Build ``output_path`` from the unpacked tree at ``source_tree``.

        Raises:
            SourceInvalidError: Source missing or not a directory
            ManifestInvalidError: Descriptor missing or unparsable (validation on)
            InsufficientDiskSpaceError: Destination too small; raised before any backend runs
            CopyFailedError: A protected source could not be copied by any strategy
            BuildToolFailedError: The backend failed; carries a diagnostic
            ProcessTimeoutError: The packaging tool timed out
        """
        options = options or BuildOptions()
        source = Path(source_tree)
        output = Path(output_path)
        started = time.monotonic()
        warnings: list[str] = []

        if not source.exists():
            raise SourceInvalidError(source, "does not exist")
        if not source.is_dir():
            raise SourceInvalidError(source, "is not a directory")
        if options.validate_manifest and locate_manifest(source) is None:
            raise ManifestInvalidError(source, "AppxManifest.xml not found")
        if output.exists() and not options.overwrite:
            diagnosis = diagnosis_for("output_conflict", str(output))
            raise BuildToolFailedError("builder", diagnosis.message, kind=diagnosis.kind)

        self._check_disk_space(source, output)
        backend = self._select_backend(options, warnings)

        reasons = staging_reasons(source, self.config.protected_roots)
        if options.force_staging:
            reasons.append("staging requested")

        scratch: Path | None = None
        copy_strategy: str | None = None
        working = source
        try:
            if reasons:
                logger.info(f"Staging {source}: {'; '.join(reasons)}")
                scratch = make_scratch_dir("bundlr-build-", self._scratch_parent())
                stager = SourceStager(self.runner, self.tools, self.config.copy_timeout_seconds)
                outcome = stager.copy(source, scratch / source.name)
                working = outcome.destination
                copy_strategy = outcome.strategy
                if outcome.skipped:
                    warnings.append(
                        f"{len(outcome.skipped)} unreadable entries were not copied"
                    )
                remove_signature_artifacts(working)
                ensure_content_types(working)

            if options.validate_manifest:
                warnings.extend(self._validate_manifest(working))

            output.parent.mkdir(parents=True, exist_ok=True)
            with log_duration(logger, f"{backend.kind.value} packaging of {source.name}"):
                tool_result = backend.pack(working, output, options)
        finally:
            if scratch is not None and not remove_tree(
                scratch,
                attempts=self.config.cleanup_attempts,
                base_delay_seconds=self.config.cleanup_base_delay_seconds,
            ):
                warnings.append(f"Scratch directory {scratch} could not be removed")

        size = output.stat().st_size if output.is_file() else 0
        result = PackageResult(
            output_path=str(output),
            backend=backend.kind,
            production_ready=backend.production_ready,
            size_bytes=size,
            duration_seconds=round(time.monotonic() - started, 3),
            staged=scratch is not None,
            copy_strategy=copy_strategy,
            warnings=warnings,
            tool_result=tool_result,
        )
        logger.info(
            f"Built {output} ({size / MIB:.1f} MB, backend={backend.kind.value}, "
            f"production_ready={backend.production_ready})"
        )
        return result

    def required_bytes(self, source_size: int) -> int:
        return int(source_size * self.config.disk_space_multiplier) + (
            self.config.disk_space_margin_mb * MIB
        )

    def _check_disk_space(self, source: Path, output: Path) -> None:
        destination = _existing_ancestor(output.parent)
        required = self.required_bytes(directory_size(source))
        available = self.free_space(destination)
        logger.debug(f"Disk check on {destination}: need {required}, have {available}")
        if available < required:
            raise InsufficientDiskSpaceError(destination, required, available)

    def _select_backend(self, options: BuildOptions, warnings: list[str]) -> PackagingBackend:
        makeappx = self.tools.resolve("makeappx")
        if makeappx is not None:
            return MakeAppxBackend(
                self.runner,
                makeappx,
                timeout_seconds=self.config.build_timeout_seconds,
                scratch_parent=self._scratch_parent(),
            )
        if not options.allow_fallback:
            raise BuildToolFailedError(
                "makeappx",
                "makeappx was not found. Install the Windows SDK or set tools.paths.makeappx.",
                kind="tool_missing",
            )
        message = "makeappx not found; falling back to a plain archive (not production-ready)"
        logger.warning(message)
        warnings.append(message)
        return ArchiveBackend()

    def _validate_manifest(self, working: Path) -> list[str]:
        manifest = locate_manifest(working)
        if manifest is None:
            raise ManifestInvalidError(working, "AppxManifest.xml not found")
        try:
            self.reader.parse(manifest, include_dependencies=False, include_capabilities=False)
            references = _logo_references(manifest)
        except (ManifestError, ValueError) as e:
            raise ManifestInvalidError(working, str(e)) from e

        warnings: list[str] = []
        for reference in references:
            if not asset_exists(working, reference):
                message = f"Referenced asset {reference} not found"
                logger.warning(message)
                warnings.append(message)
        return warnings

    def _scratch_parent(self) -> Path | None:
        return Path(self.config.scratch_dir) if self.config.scratch_dir else None
