"""Path validation and normalization for user-supplied paths."""

from __future__ import annotations

from pathlib import Path, PurePath
import re

from bundlr.core.errors import BundlrError

MAX_PATH_LENGTH = 260

# Windows device names are reserved with or without an extension (NUL.txt).
_RESERVED_NAME = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\..*)?$", re.IGNORECASE)


class PathValidationError(BundlrError, ValueError):
    """Raised when a path fails validation."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path {path!r}: {reason}")


def validate_path(
    path: str | Path,
    *,
    must_exist: bool = False,
    create: bool = False,
    max_length: int = MAX_PATH_LENGTH,
) -> Path:
    """Validate a path and return it resolved to an absolute Path.

    Rejects null bytes, ``..`` segments, reserved device names and paths whose
    resolved form exceeds ``max_length`` characters.

    Args:
        path: Path to validate
        must_exist: Fail if the path does not exist (after optional creation)
        create: Create the path as a directory when it is missing
        max_length: Maximum length of the resolved path

    Returns:
        Absolute, normalized path

    Raises:
        PathValidationError: If any check fails
    """
    raw = str(path)
    if not raw.strip():
        raise PathValidationError(raw, "path is empty")
    if "\x00" in raw:
        raise PathValidationError(raw, "path contains a null byte")

    # Split on both separators so Windows-style input is checked on POSIX too.
    parts = [p for p in re.split(r"[\\/]", raw) if p]
    if any(p == ".." for p in parts):
        raise PathValidationError(raw, "path traversal sequence '..' is not allowed")
    for part in parts:
        if _RESERVED_NAME.match(part.rstrip(" .")):
            raise PathValidationError(raw, f"reserved device name {part!r}")

    resolved = Path(raw).expanduser().resolve()
    if len(str(resolved)) > max_length:
        raise PathValidationError(raw, f"path longer than {max_length} characters")

    if create and not resolved.exists():
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathValidationError(raw, f"cannot create directory: {e}") from e

    if must_exist and not resolved.exists():
        raise PathValidationError(raw, "path does not exist")

    return resolved


def relative_posix(path: Path, base: Path) -> str:
    """Return ``path`` relative to ``base`` with forward slashes."""
    return PurePath(path.relative_to(base)).as_posix()
