"""Path helpers for bundlr.

Example:
    >>> from bundlr.core.io import validate_path
    >>> out = validate_path("backups", create=True)
"""

from bundlr.core.io.paths import (
    MAX_PATH_LENGTH,
    PathValidationError,
    relative_posix,
    validate_path,
)

__all__ = [
    "MAX_PATH_LENGTH",
    "PathValidationError",
    "relative_posix",
    "validate_path",
]
