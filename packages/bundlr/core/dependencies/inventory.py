"""Live package inventory providers.

The resolver asks an ``InventoryProvider`` which packages are installed. On
Windows this is ``Get-AppxPackage`` (``CommandInventory``); tests and offline
use go through ``StaticInventory``.
"""

from __future__ import annotations

import json
from pathlib import Path
import threading
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from bundlr.core.errors import BundlrError
from bundlr.core.manifest.models import NEUTRAL, normalize_version, version_key
from bundlr.core.process import ProcessError, ProcessInvocation, ProcessRunner
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

# Numeric ProcessorArchitecture values as serialized by ConvertTo-Json.
_ARCHITECTURE_CODES = {0: "x86", 5: "arm", 9: "x64", 11: "neutral", 12: "arm64"}


class InventoryError(BundlrError):
    """The inventory could not be queried."""


class InstalledPackage(BaseModel):
    """One installed package as reported by the inventory."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="Name")
    publisher: str = Field(default="", alias="Publisher")
    version: str = Field(default="0.0.0.0", alias="Version")
    architecture: str = Field(default=NEUTRAL, alias="Architecture")
    install_location: str | None = Field(default=None, alias="InstallLocation")
    is_framework: bool = Field(default=False, alias="IsFramework")

    @field_validator("version", mode="before")
    @classmethod
    def _version(cls, value: Any) -> str:
        # Get-AppxPackage may serialize Version as {"Major":..,"Minor":..}
        if isinstance(value, dict):
            parts = [value.get(k, 0) for k in ("Major", "Minor", "Build", "Revision")]
            value = ".".join(str(max(int(p), 0)) for p in parts)
        return normalize_version(str(value) if value is not None else None)

    @field_validator("architecture", mode="before")
    @classmethod
    def _architecture(cls, value: Any) -> str:
        if isinstance(value, int):
            return _ARCHITECTURE_CODES.get(value, NEUTRAL)
        text = str(value).strip().lower() if value is not None else ""
        return text or NEUTRAL

    @field_validator("publisher", mode="before")
    @classmethod
    def _publisher(cls, value: Any) -> str:
        return "" if value is None else str(value)


class InventoryProvider(Protocol):
    """Query interface for installed packages."""

    def find(self, name: str, publisher: str | None = None) -> InstalledPackage | None:
        """Return the installed package with this name (highest version), or None."""
        ...

    def list_packages(self) -> list[InstalledPackage]:
        """Return every installed package."""
        ...


def _select(
    packages: list[InstalledPackage], name: str, publisher: str | None
) -> InstalledPackage | None:
    wanted = name.lower()
    matches = [p for p in packages if p.name.lower() == wanted]
    if publisher:
        by_publisher = [p for p in matches if p.publisher.lower() == publisher.lower()]
        # Publisher strings in manifests are sometimes stale; fall back to name-only.
        matches = by_publisher or matches
    if not matches:
        return None
    return max(matches, key=lambda p: version_key(p.version))


class StaticInventory:
    """Inventory backed by a fixed list (tests, offline snapshots).

    Example:
        >>> inv = StaticInventory([InstalledPackage(name="Microsoft.VCLibs.140.00")])
        >>> inv.find("microsoft.vclibs.140.00").name
        'Microsoft.VCLibs.140.00'
    """

    def __init__(self, packages: list[InstalledPackage] | None = None) -> None:
        self._packages = list(packages or [])

    @classmethod
    def from_json_file(cls, path: Path | str) -> StaticInventory:
        """Load a snapshot written as a JSON array (or single object) of packages."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
        except (OSError, ValueError) as e:
            raise InventoryError(f"Cannot read inventory snapshot {path}: {e}") from e
        return cls(parse_inventory_json(data))

    def find(self, name: str, publisher: str | None = None) -> InstalledPackage | None:
        return _select(self._packages, name, publisher)

    def list_packages(self) -> list[InstalledPackage]:
        return list(self._packages)


def parse_inventory_json(data: Any) -> list[InstalledPackage]:
    """Convert decoded ``ConvertTo-Json`` output into InstalledPackage models.

    Malformed items are skipped with a warning.
    """
    if data is None:
        return []
    items = data if isinstance(data, list) else [data]
    packages: list[InstalledPackage] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning(f"Ignoring non-object inventory item: {item!r}")
            continue
        try:
            packages.append(InstalledPackage.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Ignoring malformed inventory item {item.get('Name')!r}: {e}")
    return packages


class CommandInventory:
    """Inventory produced by an external command printing JSON.

    The command runs once, on first use; its output is cached for the
    lifetime of the instance.

    Args:
        runner: Process runner used to execute the command
        command: Executable followed by its arguments
        timeout_seconds: Bound for the inventory query
    """

    def __init__(
        self, runner: ProcessRunner, command: list[str], timeout_seconds: float = 120.0
    ) -> None:
        if not command:
            raise ValueError("inventory command must not be empty")
        self._runner = runner
        self._command = command
        self._timeout = timeout_seconds
        self._packages: list[InstalledPackage] | None = None
        self._lock = threading.Lock()

    def _load(self) -> list[InstalledPackage]:
        with self._lock:
            if self._packages is not None:
                return self._packages
            invocation = ProcessInvocation(
                executable=self._command[0],
                arguments=tuple(self._command[1:]),
                timeout_seconds=self._timeout,
                tool_name="inventory",
            )
            try:
                result = self._runner.run(invocation)
            except ProcessError as e:
                raise InventoryError(f"Inventory query failed: {e}") from e

            text = result.stdout.strip()
            try:
                data = json.loads(text) if text else []
            except ValueError as e:
                raise InventoryError(f"Inventory output is not JSON: {e}") from e

            self._packages = parse_inventory_json(data)
            logger.debug(f"Inventory loaded: {len(self._packages)} packages")
            return self._packages

    def find(self, name: str, publisher: str | None = None) -> InstalledPackage | None:
        return _select(self._load(), name, publisher)

    def list_packages(self) -> list[InstalledPackage]:
        return list(self._load())
