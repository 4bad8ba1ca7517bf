"""Dependency resolution against a live package inventory."""

from bundlr.core.dependencies.errors import ManifestNotFoundError
from bundlr.core.dependencies.inventory import (
    CommandInventory,
    InstalledPackage,
    InventoryError,
    InventoryProvider,
    StaticInventory,
    parse_inventory_json,
)
from bundlr.core.dependencies.models import (
    DependencyEntry,
    DependencyResult,
    DependencyType,
    ResolveOptions,
)
from bundlr.core.dependencies.resolver import DEFAULT_FRAMEWORK_PATTERNS, DependencyResolver

__all__ = [
    # Resolver
    "DependencyResolver",
    "DEFAULT_FRAMEWORK_PATTERNS",
    "ResolveOptions",
    # Models
    "DependencyEntry",
    "DependencyResult",
    "DependencyType",
    # Inventory
    "InventoryProvider",
    "InstalledPackage",
    "StaticInventory",
    "CommandInventory",
    "parse_inventory_json",
    # Errors
    "InventoryError",
    "ManifestNotFoundError",
]
