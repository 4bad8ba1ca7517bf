"""Dependency resolution models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from bundlr.core.manifest.models import NEUTRAL, ZERO_VERSION


class DependencyType(str, Enum):
    """How a dependency was discovered."""

    DECLARED = "declared"
    FRAMEWORK = "framework"


class DependencyEntry(BaseModel):
    """One resolved dependency. Created during resolution, never mutated after."""

    model_config = ConfigDict(frozen=True)

    name: str
    publisher: str = ""
    min_version: str = ZERO_VERSION
    architecture: str = NEUTRAL
    dependency_type: DependencyType = DependencyType.DECLARED
    is_optional: bool = False
    is_installed: bool = False
    installed_version: str | None = None
    install_location: str | None = None
    depth: int = Field(default=0, ge=0, description="0 = declared by the root package")

    @property
    def version(self) -> str:
        """Installed version when known, else the declared minimum."""
        return self.installed_version or self.min_version

    @property
    def identifier(self) -> str:
        """``name_version_architecture`` identifier for installation-order lists."""
        return f"{self.name}_{self.version}_{self.architecture}"


class ResolveOptions(BaseModel):
    """Options for a resolution pass."""

    include_optional: bool = False
    recursive: bool = False
    max_depth: int = Field(default=3, ge=0)


class DependencyResult(BaseModel):
    """Flat, de-duplicated dependency list of one package.

    Counts and installation order are pure functions of ``dependencies``. The
    list is not a graph: a dependency reached by several paths appears once.
    """

    package_name: str
    package_path: str
    dependencies: list[DependencyEntry] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_dependencies(self) -> int:
        return len(self.dependencies)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def installed_count(self) -> int:
        return sum(1 for d in self.dependencies if d.is_installed)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def missing_count(self) -> int:
        return sum(1 for d in self.dependencies if not d.is_installed)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def framework_count(self) -> int:
        return sum(1 for d in self.dependencies if d.dependency_type is DependencyType.FRAMEWORK)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def installation_order(self) -> list[str]:
        """Dependency identifiers in the order they must be installed.

        Frameworks first, then deeper (transitive) dependencies before the
        ones that need them; discovery order breaks ties.
        """
        indexed = list(enumerate(self.dependencies))
        indexed.sort(
            key=lambda item: (
                item[1].dependency_type is not DependencyType.FRAMEWORK,
                -item[1].depth,
                item[0],
            )
        )
        order: list[str] = []
        for _, entry in indexed:
            if entry.identifier not in order:
                order.append(entry.identifier)
        return order

    def ordered(self) -> list[DependencyEntry]:
        """Entries sorted into installation order (one per identifier)."""
        by_id: dict[str, DependencyEntry] = {}
        for entry in self.dependencies:
            by_id.setdefault(entry.identifier, entry)
        return [by_id[i] for i in self.installation_order]
