"""Copying protected package sources into a writable scratch tree.

Installed packages live in system-managed directories that are read-only,
partially unreadable, or carry signature artifacts that the packaging tool
rejects. Such sources are copied first, trying each strategy in turn:

1. ``mirror`` - the platform mirror tool (robocopy, else rsync)
2. ``copytree`` - ``shutil.copytree``
3. ``per_file`` - file-by-file copy that skips unreadable files
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
import os
from pathlib import Path, PurePath
import shutil

from bundlr.core.builder.errors import CopyFailedError
from bundlr.core.context import ToolContext
from bundlr.core.manifest import locate_manifest
from bundlr.core.process import ProcessError, ProcessInvocation, ProcessRunner
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_ARTIFACTS: tuple[str, ...] = (
    "AppxSignature.p7x",
    "AppxBlockMap.xml",
    "AppxMetadata/CodeIntegrity.cat",
)


@dataclass
class CopyOutcome:
    strategy: str
    destination: Path
    skipped: list[str] = field(default_factory=list)


def _normalized(path: Path | str) -> str:
    return PurePath(path).as_posix().rstrip("/").lower()


def is_under(path: Path, roots: Sequence[str]) -> bool:
    """True if ``path`` lies within one of ``roots`` (case-insensitive)."""
    target = _normalized(path)
    for root in roots:
        prefix = _normalized(root)
        if prefix and (target == prefix or target.startswith(prefix + "/")):
            return True
    return False


def present_signature_artifacts(root: Path) -> list[str]:
    return [name for name in SIGNATURE_ARTIFACTS if (root / name).exists()]


def staging_reasons(source: Path, protected_roots: Sequence[str]) -> list[str]:
    """Reasons why ``source`` must be copied before packaging (empty: none)."""
    reasons: list[str] = []
    if is_under(source, protected_roots) or is_under(source.resolve(), protected_roots):
        reasons.append("source is inside a protected install root")

    try:
        with os.scandir(source) as entries:
            next(entries, None)
        manifest = locate_manifest(source)
        if manifest is not None:
            with manifest.open("rb") as handle:
                handle.read(1)
    except OSError as e:
        reasons.append(f"source is not fully readable ({e.strerror or e})")

    artifacts = present_signature_artifacts(source)
    if artifacts:
        reasons.append("source carries signature artifacts: " + ", ".join(artifacts))
    return reasons


def remove_signature_artifacts(root: Path) -> list[str]:
    """Delete stale signature artifacts from a staged tree."""
    removed: list[str] = []
    for name in SIGNATURE_ARTIFACTS:
        target = root / name
        if target.is_file():
            target.chmod(0o666)
            target.unlink()
            removed.append(name)
    if removed:
        logger.info(f"Removed stale signature artifacts: {', '.join(removed)}")
    return removed


class SourceStager:
    """Copies a source tree with the mirror -> copytree -> per-file chain.

    Args:
        runner: Process runner for the mirror tool
        tools: Tool lookup (``robocopy`` / ``rsync``)
        timeout_seconds: Bound for the mirror tool run
    """

    def __init__(
        self,
        runner: ProcessRunner,
        tools: ToolContext,
        timeout_seconds: float = 1800.0,
    ) -> None:
        self.runner = runner
        self.tools = tools
        self.timeout_seconds = timeout_seconds

    def copy(self, source: Path, destination: Path) -> CopyOutcome:
        """Copy ``source`` to ``destination`` (created; must not hold files yet).

        Raises:
            CopyFailedError: If every strategy failed
        """
        strategies: list[tuple[str, Callable[[Path, Path], list[str]]]] = [
            ("mirror", self._mirror),
            ("copytree", self._copytree),
            ("per_file", self._per_file),
        ]
        attempts: list[str] = []
        for name, strategy in strategies:
            try:
                skipped = strategy(source, destination)
            except _StrategyUnavailable as e:
                logger.debug(f"Copy strategy {name} unavailable: {e}")
                attempts.append(f"{name}: {e}")
                continue
            except (OSError, ProcessError, shutil.Error) as e:
                logger.warning(f"Copy strategy {name} failed for {source}: {e}")
                attempts.append(f"{name}: {e}")
                continue
            logger.info(f"Copied {source} -> {destination} using {name}")
            return CopyOutcome(name, destination, skipped)
        raise CopyFailedError(source, attempts)

    def _mirror(self, source: Path, destination: Path) -> list[str]:
        robocopy = self.tools.resolve("robocopy")
        if robocopy is not None:
            args: tuple[str, ...] = (
                str(source), str(destination), "/MIR", "/R:1", "/W:1",
                "/NFL", "/NDL", "/NJH", "/NJS", "/NP",
            )
            executable = robocopy
        else:
            rsync = self.tools.resolve("rsync")
            if rsync is None:
                raise _StrategyUnavailable("neither robocopy nor rsync is available")
            args = ("-a", "--delete", f"{source}/", f"{destination}/")
            executable = rsync

        destination.mkdir(parents=True, exist_ok=True)
        self.runner.run(
            ProcessInvocation(
                executable=executable,
                arguments=args,
                timeout_seconds=self.timeout_seconds,
            )
        )
        return []

    def _copytree(self, source: Path, destination: Path) -> list[str]:
        shutil.copytree(source, destination, dirs_exist_ok=True)
        return []

    def _per_file(self, source: Path, destination: Path) -> list[str]:
        skipped: list[str] = []
        copied = 0

        def _walk_error(error: OSError) -> None:
            skipped.append(str(error.filename))

        for dirpath, _dirnames, filenames in os.walk(source, onerror=_walk_error):
            target_dir = destination / Path(dirpath).relative_to(source)
            target_dir.mkdir(parents=True, exist_ok=True)
            for filename in filenames:
                src = Path(dirpath) / filename
                try:
                    shutil.copy2(src, target_dir / filename)
                    copied += 1
                except OSError as e:
                    logger.warning(f"Skipping unreadable file {src}: {e}")
                    skipped.append(str(src.relative_to(source)))

        if copied == 0 and skipped:
            raise OSError(f"no file could be copied ({len(skipped)} unreadable)")
        if skipped:
            logger.warning(f"Per-file copy skipped {len(skipped)} entries")
        return skipped


class _StrategyUnavailable(Exception):
    pass
