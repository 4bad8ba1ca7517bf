"""Packaging backends: the SDK packaging tool and a plain-archive fallback."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol
import zipfile

from bundlr.core.builder.content_types import CONTENT_TYPES_FILE, build_content_types_xml
from bundlr.core.builder.diagnostics import diagnose, diagnosis_for
from bundlr.core.builder.errors import BuildToolFailedError
from bundlr.core.builder.models import BackendKind, BuildOptions
from bundlr.core.builder.staging import SIGNATURE_ARTIFACTS
from bundlr.core.manifest.reader import BUNDLE_MANIFEST
from bundlr.core.process import ProcessInvocation, ProcessResult, ProcessRunner
from bundlr.core.utils.fs import iter_files, make_scratch_dir, remove_tree
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

# Parts the SDK tool generates itself and refuses as payload.
RESERVED_PARTS = frozenset(
    name.lower() for name in (*SIGNATURE_ARTIFACTS, CONTENT_TYPES_FILE)
)


class PackagingBackend(Protocol):
    kind: BackendKind
    production_ready: bool

    def pack(self, source: Path, output: Path, options: BuildOptions) -> ProcessResult | None:
        """Produce ``output`` from the tree at ``source``."""
        ...


def _payload(source: Path) -> list[tuple[Path, str]]:
    files: list[tuple[Path, str]] = []
    for path in iter_files(source):
        relative = path.relative_to(source).as_posix()
        if relative.lower() not in RESERVED_PARTS:
            files.append((path, relative))
    return files


def write_mapping_file(source: Path, target: Path) -> int:
    """Write a ``[Files]`` mapping of every payload file under ``source``.

    Returns:
        Number of mapped files
    """
    payload = _payload(source)
    lines = ["[Files]"]
    for path, relative in payload:
        package_name = relative.replace("/", "\\")
        lines.append(f'"{path}" "{package_name}"')
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return len(payload)


class MakeAppxBackend:
    """Builds with the Windows SDK ``makeappx`` tool.

    Single packages are packed from a generated mapping file so reserved
    parts in the source never reach the tool; bundles are packed from the
    directory.
    """

    kind = BackendKind.SDK
    production_ready = True

    def __init__(
        self,
        runner: ProcessRunner,
        executable: Path | str,
        timeout_seconds: float = 1800.0,
        scratch_parent: Path | None = None,
    ) -> None:
        self.runner = runner
        self.executable = executable
        self.timeout_seconds = timeout_seconds
        self.scratch_parent = scratch_parent

    def pack(self, source: Path, output: Path, options: BuildOptions) -> ProcessResult | None:
        is_bundle = (source / BUNDLE_MANIFEST).is_file()
        work = make_scratch_dir("bundlr-map-", self.scratch_parent)
        try:
            if is_bundle:
                args = ["bundle", "/d", str(source), "/p", str(output)]
            else:
                mapping = work / "mapping.txt"
                count = write_mapping_file(source, mapping)
                logger.debug(f"Mapped {count} files from {source}")
                args = ["pack", "/f", str(mapping), "/p", str(output)]
            if options.overwrite:
                args.append("/o")
            if options.skip_tool_validation:
                args.append("/nv")

            result = self.runner.run(
                ProcessInvocation(
                    executable=self.executable,
                    arguments=tuple(args),
                    timeout_seconds=self.timeout_seconds,
                    tool_name="makeappx",
                    pass_through_on_failure=True,
                )
            )
        finally:
            remove_tree(work, attempts=2)

        if not result.success:
            diagnosis = diagnose(result.combined_output)
            logger.error(f"makeappx failed ({diagnosis.kind}): {diagnosis.message}")
            raise BuildToolFailedError("makeappx", diagnosis.message, result, diagnosis.kind)
        return result


class ArchiveBackend:
    """Fallback that zips the tree with a generated content-types part.

    The result has the package extension but no block map or signature, so
    it cannot be signed or installed as-is.
    """

    kind = BackendKind.ARCHIVE
    production_ready = False

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED) -> None:
        self.compression = compression

    def pack(self, source: Path, output: Path, options: BuildOptions) -> ProcessResult | None:
        if output.exists() and not options.overwrite:
            diagnosis = diagnosis_for("output_conflict", str(output))
            raise BuildToolFailedError("archive", diagnosis.message, kind=diagnosis.kind)

        logger.warning(
            "Packaging tool unavailable: producing a plain archive. The output is NOT "
            "production-ready (no block map, cannot be signed or installed)."
        )
        output.parent.mkdir(parents=True, exist_ok=True)
        tmp = output.with_name(output.name + ".partial")
        try:
            with zipfile.ZipFile(tmp, "w", compression=self.compression) as zf:
                zf.writestr(CONTENT_TYPES_FILE, build_content_types_xml(source))
                for path, relative in _payload(source):
                    zf.write(path, relative)
            tmp.replace(output)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            diagnosis = diagnose(str(e))
            raise BuildToolFailedError("archive", diagnosis.message, kind=diagnosis.kind) from e
        return None
