"""Filesystem helpers shared by the builder, composer and backup service."""

from __future__ import annotations

from collections.abc import Callable, Iterator
import os
from pathlib import Path
import shutil
import stat
import sys
import tempfile
import time

from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)


def iter_files(root: Path) -> Iterator[Path]:
    """Yield every regular file below root (depth-first, sorted per directory)."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            yield Path(dirpath) / filename


def directory_size(root: Path) -> int:
    """Return total size in bytes of all files below root.

    Files that vanish or cannot be stat'ed while walking are skipped.
    """
    total = 0
    for path in iter_files(root):
        try:
            total += path.stat().st_size
        except OSError:
            continue
    return total


def make_scratch_dir(prefix: str, parent: Path | None = None) -> Path:
    """Create a fresh scratch directory and return its path."""
    if parent is not None:
        parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=prefix, dir=parent))


def _clear_readonly(func, path, _exc) -> None:  # type: ignore[no-untyped-def]
    # Read-only files (copied out of protected install roots) block rmtree on Windows.
    os.chmod(path, stat.S_IWRITE)
    func(path)


def remove_tree(
    path: Path,
    attempts: int = 5,
    base_delay_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Remove a directory tree, retrying with increasing delays.

    Packaging tools and virus scanners may hold file handles for a short time
    after they report completion, so removal is retried. Failure is never
    raised: the caller gets False and a warning is logged.

    Args:
        path: Directory to remove (missing directories count as removed)
        attempts: Maximum number of removal attempts
        base_delay_seconds: Delay before the second attempt; doubles afterwards
        sleep: Sleep function (injectable for tests)

    Returns:
        True if the directory no longer exists
    """
    delay = base_delay_seconds
    last_error: OSError | None = None
    for attempt in range(1, max(attempts, 1) + 1):
        if not path.exists():
            return True
        try:
            if sys.version_info >= (3, 12):
                shutil.rmtree(path, onexc=_clear_readonly)
            else:
                shutil.rmtree(path, onerror=_clear_readonly)
            return True
        except OSError as e:
            last_error = e
            logger.debug(f"Cleanup attempt {attempt}/{attempts} failed for {path}: {e}")
            if attempt < attempts:
                sleep(delay)
                delay *= 2

    logger.warning(f"Could not remove scratch directory {path}: {last_error}")
    return not path.exists()
