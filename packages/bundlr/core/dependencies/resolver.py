"""Builds the installation-ordered dependency set of a package."""

from __future__ import annotations

from collections.abc import Sequence
import fnmatch
from pathlib import Path

from bundlr.core.dependencies.errors import ManifestNotFoundError
from bundlr.core.dependencies.inventory import InstalledPackage, InventoryProvider
from bundlr.core.dependencies.models import (
    DependencyEntry,
    DependencyResult,
    DependencyType,
    ResolveOptions,
)
from bundlr.core.errors import BundlrError
from bundlr.core.manifest import DeclaredDependency, ManifestError, ManifestReader, locate_manifest
from bundlr.core.manifest.models import version_key
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FRAMEWORK_PATTERNS: tuple[str, ...] = (
    "Microsoft.VCLibs.*",
    "Microsoft.NET.Native.Framework.*",
    "Microsoft.NET.Native.Runtime.*",
    "Microsoft.UI.Xaml.*",
    "Microsoft.WindowsAppRuntime.*",
    "Microsoft.Services.Store.Engagement",
)


class DependencyResolver:
    """Resolves declared and framework dependencies against an inventory.

    The recursive walk is bounded by ``max_depth`` (primary cycle guard) and a
    visited-name set shared across the whole pass (secondary guard). The
    output is a flat list; diamonds and cycles are not distinguished.

    Args:
        inventory: Live inventory of installed packages
        reader: Manifest reader (a default one is created if None)
        framework_patterns: ``fnmatch`` patterns naming shared framework packages

    Example:
        >>> resolver = DependencyResolver(StaticInventory(installed))
        >>> result = resolver.resolve(Path("C:/apps/Contoso.App"), ResolveOptions(recursive=True))
        >>> result.installation_order
        ['Microsoft.VCLibs.140.00_14.0.33519.0_x64']
    """

    def __init__(
        self,
        inventory: InventoryProvider,
        reader: ManifestReader | None = None,
        framework_patterns: Sequence[str] = DEFAULT_FRAMEWORK_PATTERNS,
    ) -> None:
        self.inventory = inventory
        self.reader = reader or ManifestReader()
        self.framework_patterns = tuple(framework_patterns)

    def resolve(
        self, package_path: Path | str, options: ResolveOptions | None = None
    ) -> DependencyResult:
        """Resolve the dependencies of the package at ``package_path``.

        Args:
            package_path: Unpacked package directory or its manifest file
            options: Resolution options (defaults: non-recursive, no optional)

        Raises:
            ManifestNotFoundError: If no manifest exists at package_path
            ManifestError: If the root manifest cannot be read
        """
        options = options or ResolveOptions()
        manifest_path = self._manifest_path(Path(package_path))
        record = self.reader.parse(
            manifest_path, include_dependencies=True, include_capabilities=False
        )
        logger.info(
            f"Resolving dependencies of {record.identity.name} "
            f"({len(record.dependencies)} declared, recursive={options.recursive})"
        )

        visited: set[str] = {record.identity.name.lower()}
        entries: list[DependencyEntry] = []
        warnings: list[str] = []

        self._add_declared(record.dependencies, 0, visited, entries, warnings)
        if options.recursive:
            self._walk(entries, options.max_depth, visited, warnings)

        for framework in self._frameworks(entries, warnings):
            if options.include_optional:
                entries.append(framework)
            else:
                logger.debug(f"Skipping optional framework {framework.name}")

        result = DependencyResult(
            package_name=record.identity.name,
            package_path=str(package_path),
            dependencies=entries,
            warnings=warnings,
        )
        logger.info(
            f"{record.identity.name}: {result.total_dependencies} dependencies "
            f"({result.installed_count} installed, {result.missing_count} missing, "
            f"{result.framework_count} framework)"
        )
        return result

    def _manifest_path(self, package_path: Path) -> Path:
        if package_path.is_file():
            return package_path
        if package_path.is_dir():
            located = locate_manifest(package_path)
            if located is not None:
                return located
        raise ManifestNotFoundError(package_path)

    def _lookup(self, name: str, publisher: str, warnings: list[str]) -> InstalledPackage | None:
        try:
            return self.inventory.find(name, publisher or None)
        except BundlrError as e:
            message = f"Inventory lookup failed for {name}: {e}"
            logger.warning(message)
            warnings.append(message)
            return None

    def _add_declared(
        self,
        declared: Sequence[DeclaredDependency],
        depth: int,
        visited: set[str],
        entries: list[DependencyEntry],
        warnings: list[str],
    ) -> list[DependencyEntry]:
        added: list[DependencyEntry] = []
        for dep in declared:
            key = dep.name.lower()
            if key in visited:
                continue
            visited.add(key)

            installed = self._lookup(dep.name, dep.publisher, warnings)
            outdated = installed is not None and (
                version_key(installed.version) < version_key(dep.min_version)
            )
            if installed is not None and outdated:
                message = (
                    f"{dep.name} {installed.version} is installed but "
                    f"{dep.min_version} or later is required"
                )
                logger.warning(message)
                warnings.append(message)

            entry = DependencyEntry(
                name=dep.name,
                publisher=dep.publisher or (installed.publisher if installed else ""),
                min_version=dep.min_version,
                architecture=installed.architecture if installed else "neutral",
                dependency_type=DependencyType.DECLARED,
                is_optional=False,
                is_installed=installed is not None,
                installed_version=installed.version if installed else None,
                install_location=installed.install_location if installed else None,
                depth=depth,
            )
            if not entry.is_installed:
                logger.warning(f"Dependency {dep.name} (>= {dep.min_version}) is not installed")
            entries.append(entry)
            added.append(entry)
        return added

    def _walk(
        self,
        entries: list[DependencyEntry],
        max_depth: int,
        visited: set[str],
        warnings: list[str],
    ) -> None:
        """Breadth-first descent into installed dependencies, folding into ``entries``."""
        frontier = list(entries)
        depth = 0
        descended: set[str] = set()
        while frontier and depth < max_depth:
            next_frontier: list[DependencyEntry] = []
            for entry in frontier:
                location = entry.install_location
                if not location or location.lower() in descended:
                    continue
                descended.add(location.lower())

                manifest = locate_manifest(Path(location))
                if manifest is None:
                    logger.debug(f"No manifest under {location}, not descending")
                    continue
                try:
                    child = self.reader.parse(
                        manifest, include_dependencies=True, include_capabilities=False
                    )
                except ManifestError as e:
                    message = f"Cannot read manifest of {entry.name}: {e}"
                    logger.warning(message)
                    warnings.append(message)
                    continue

                next_frontier.extend(
                    self._add_declared(child.dependencies, depth + 1, visited, entries, warnings)
                )
            frontier = next_frontier
            depth += 1

        if frontier and depth >= max_depth:
            logger.debug(f"Stopped dependency walk at max depth {max_depth}")

    def _frameworks(
        self, entries: list[DependencyEntry], warnings: list[str]
    ) -> list[DependencyEntry]:
        """Installed framework packages not already in ``entries`` (highest version each)."""
        if not self.framework_patterns:
            return []
        try:
            installed = self.inventory.list_packages()
        except BundlrError as e:
            message = f"Framework scan skipped, inventory unavailable: {e}"
            logger.warning(message)
            warnings.append(message)
            return []

        present = {e.name.lower() for e in entries}
        best: dict[str, InstalledPackage] = {}
        for pkg in installed:
            key = pkg.name.lower()
            if key in present or not self._is_framework_name(pkg.name):
                continue
            current = best.get(key)
            if current is None or version_key(pkg.version) > version_key(current.version):
                best[key] = pkg

        return [
            DependencyEntry(
                name=pkg.name,
                publisher=pkg.publisher,
                min_version=pkg.version,
                architecture=pkg.architecture,
                dependency_type=DependencyType.FRAMEWORK,
                is_optional=True,
                is_installed=True,
                installed_version=pkg.version,
                install_location=pkg.install_location,
                depth=0,
            )
            for pkg in best.values()
        ]

    def _is_framework_name(self, name: str) -> bool:
        lowered = name.lower()
        return any(fnmatch.fnmatchcase(lowered, p.lower()) for p in self.framework_patterns)
