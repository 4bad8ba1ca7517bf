"""Tool discovery context passed explicitly to runners and builders."""

from __future__ import annotations

from pathlib import Path
import shutil
import sys
import threading

from bundlr.core.config.models import ToolsConfig
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

# Windows SDK layout: bin/<version>/<arch>/makeappx.exe, newest version wins.
_SDK_BIN_DIRS = (
    (Path("C:/Program Files (x86)/Windows Kits/10/bin"), "*/x64"),
    (Path("C:/Program Files (x86)/Windows Kits/10"), "App Certification Kit"),
)


class ToolContext:
    """Resolves external tool names to executable paths.

    Resolution order: explicit ``paths`` entries, ``search_dirs``, the Windows
    SDK bin directories (Windows only), then PATH. Results, including misses,
    are cached per instance; the cache is guarded by a lock so one context can
    be shared between threads.

    Example:
        >>> tools = ToolContext(ToolsConfig(paths={"makeappx": "/opt/sdk/makeappx"}))
        >>> tools.resolve("makeappx")
        PosixPath('/opt/sdk/makeappx')
    """

    def __init__(self, config: ToolsConfig | None = None, use_sdk_dirs: bool | None = None):
        self._config = config or ToolsConfig()
        self._use_sdk_dirs = sys.platform == "win32" if use_sdk_dirs is None else use_sdk_dirs
        self._cache: dict[str, Path | None] = {}
        self._lock = threading.Lock()

    @classmethod
    def with_paths(cls, **paths: str | Path) -> ToolContext:
        """Build a context that only knows the given tools (plus PATH)."""
        return cls(ToolsConfig(paths={k: str(v) for k, v in paths.items()}), use_sdk_dirs=False)

    def resolve(self, name: str) -> Path | None:
        """Return the executable path for ``name`` or None if not found."""
        key = name.lower()
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        found = self._locate(name)
        if found is None:
            logger.debug(f"Tool not found: {name}")
        else:
            logger.debug(f"Resolved tool {name} -> {found}")

        with self._lock:
            self._cache[key] = found
        return found

    def is_available(self, name: str) -> bool:
        return self.resolve(name) is not None

    def clear(self) -> None:
        """Forget cached lookups (e.g. after installing a tool)."""
        with self._lock:
            self._cache.clear()

    def _locate(self, name: str) -> Path | None:
        explicit = self._config.paths.get(name) or self._config.paths.get(name.lower())
        if explicit:
            path = Path(explicit)
            if path.is_file():
                return path
            logger.warning(f"Configured path for {name} does not exist: {path}")

        for directory in self._candidate_dirs():
            for candidate in (directory / name, directory / f"{name}.exe"):
                if candidate.is_file():
                    return candidate

        which = shutil.which(name)
        return Path(which) if which else None

    def _candidate_dirs(self) -> list[Path]:
        dirs = [Path(d) for d in self._config.search_dirs]
        if self._use_sdk_dirs:
            for root, pattern in _SDK_BIN_DIRS:
                if root.exists():
                    dirs.extend(sorted(root.glob(pattern), reverse=True))
        return dirs
