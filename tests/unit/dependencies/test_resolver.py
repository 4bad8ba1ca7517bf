"""Tests for DependencyResolver."""

from __future__ import annotations

from pathlib import Path

import pytest

from bundlr.core.dependencies import (
    DependencyResolver,
    DependencyType,
    InventoryError,
    ManifestNotFoundError,
    ResolveOptions,
    StaticInventory,
)
from tests.conftest import CONTOSO_PUBLISHER, MICROSOFT_PUBLISHER

VCLIBS = "Microsoft.VCLibs.140.00"


@pytest.fixture
def chain(make_package, installed_package):
    """App -> Contoso.A -> Contoso.B -> Contoso.C (C is not installed).

    B also declares App (a cycle). VCLibs and Microsoft.UI.Xaml.2.8 are installed
    frameworks; VCLibs in two versions.
    """
    app = make_package(
        "App", dependencies=[("Contoso.A", "1.0.0.0", CONTOSO_PUBLISHER)]
    )
    dir_a = make_package(
        "A", name="Contoso.A", dependencies=[("Contoso.B", "2.0.0.0", CONTOSO_PUBLISHER)]
    )
    dir_b = make_package(
        "B",
        name="Contoso.B",
        dependencies=[
            ("Contoso.C", "3.0.0.0", CONTOSO_PUBLISHER),
            ("Contoso.App", "1.0.0.0", CONTOSO_PUBLISHER),
        ],
    )
    inventory = StaticInventory(
        [
            installed_package("Contoso.A", "1.5.0.0", CONTOSO_PUBLISHER, install_location=dir_a),
            installed_package("Contoso.B", "2.0.0.0", CONTOSO_PUBLISHER, install_location=dir_b),
            installed_package(VCLIBS, "14.0.30704.0", is_framework=True),
            installed_package(VCLIBS, "14.0.33519.0", is_framework=True),
            installed_package("Microsoft.UI.Xaml.2.8", "8.2310.30001.0", is_framework=True),
            installed_package("Contoso.Unrelated", "1.0.0.0", CONTOSO_PUBLISHER),
        ]
    )
    return app, inventory


def _assert_consistent(result) -> None:
    assert result.installed_count + result.missing_count == result.total_dependencies
    assert result.framework_count <= result.total_dependencies
    assert len(result.installation_order) == len(set(result.installation_order))


def test_direct_dependencies_only(chain):
    app, inventory = chain

    result = DependencyResolver(inventory).resolve(app)

    assert result.package_name == "Contoso.App"
    assert [d.name for d in result.dependencies] == ["Contoso.A"]
    entry = result.dependencies[0]
    assert entry.is_installed is True
    assert entry.installed_version == "1.5.0.0"
    assert entry.min_version == "1.0.0.0"
    assert entry.architecture == "x64"
    assert entry.depth == 0
    assert entry.dependency_type is DependencyType.DECLARED
    assert result.installation_order == ["Contoso.A_1.5.0.0_x64"]
    _assert_consistent(result)


def test_recursive_walk_orders_deepest_first(chain):
    app, inventory = chain

    result = DependencyResolver(inventory).resolve(app, ResolveOptions(recursive=True))

    by_name = {d.name: d for d in result.dependencies}
    assert set(by_name) == {"Contoso.A", "Contoso.B", "Contoso.C"}
    assert by_name["Contoso.B"].depth == 1
    assert by_name["Contoso.C"].depth == 2
    assert by_name["Contoso.C"].is_installed is False
    assert result.missing_count == 1
    assert result.installation_order == [
        "Contoso.C_3.0.0.0_neutral",
        "Contoso.B_2.0.0.0_x64",
        "Contoso.A_1.5.0.0_x64",
    ]
    assert [d.name for d in result.ordered()] == ["Contoso.C", "Contoso.B", "Contoso.A"]
    _assert_consistent(result)


def test_max_depth_bounds_the_walk(chain):
    app, inventory = chain
    resolver = DependencyResolver(inventory)

    depth_one = resolver.resolve(app, ResolveOptions(recursive=True, max_depth=1))
    depth_zero = resolver.resolve(app, ResolveOptions(recursive=True, max_depth=0))

    assert [d.name for d in depth_one.dependencies] == ["Contoso.A", "Contoso.B"]
    assert [d.name for d in depth_zero.dependencies] == ["Contoso.A"]


def test_cycle_back_to_root_is_ignored(chain):
    app, inventory = chain

    result = DependencyResolver(inventory).resolve(app, ResolveOptions(recursive=True))

    assert "Contoso.App" not in {d.name for d in result.dependencies}


def test_frameworks_are_optional_and_installed_first(chain):
    app, inventory = chain

    result = DependencyResolver(inventory).resolve(
        app, ResolveOptions(recursive=True, include_optional=True)
    )

    frameworks = [d for d in result.dependencies if d.dependency_type is DependencyType.FRAMEWORK]
    assert {f.name for f in frameworks} == {VCLIBS, "Microsoft.UI.Xaml.2.8"}
    assert all(f.is_optional and f.is_installed for f in frameworks)
    # Highest installed version wins
    vclibs = next(f for f in frameworks if f.name == VCLIBS)
    assert vclibs.version == "14.0.33519.0"
    assert result.framework_count == 2
    assert result.total_dependencies == 5
    assert set(result.installation_order[:2]) == {
        "Microsoft.VCLibs.140.00_14.0.33519.0_x64",
        "Microsoft.UI.Xaml.2.8_8.2310.30001.0_x64",
    }
    assert result.installation_order[2] == "Contoso.C_3.0.0.0_neutral"
    _assert_consistent(result)


def test_frameworks_excluded_by_default(chain):
    app, inventory = chain

    result = DependencyResolver(inventory).resolve(app, ResolveOptions(recursive=True))

    assert result.framework_count == 0


def test_declared_framework_is_not_added_twice(make_package, installed_package):
    app = make_package(dependencies=[(VCLIBS, "14.0.0.0", MICROSOFT_PUBLISHER)])
    inventory = StaticInventory([installed_package(VCLIBS, "14.0.33519.0", is_framework=True)])

    result = DependencyResolver(inventory).resolve(app, ResolveOptions(include_optional=True))

    assert [d.name for d in result.dependencies] == [VCLIBS]
    assert result.dependencies[0].dependency_type is DependencyType.DECLARED


def test_custom_framework_patterns(chain):
    app, inventory = chain

    result = DependencyResolver(inventory, framework_patterns=["microsoft.ui.*"]).resolve(
        app, ResolveOptions(include_optional=True)
    )

    frameworks = [d.name for d in result.dependencies if d.is_optional]
    assert frameworks == ["Microsoft.UI.Xaml.2.8"]


def test_outdated_installed_version_is_warned(make_package, installed_package):
    app = make_package(dependencies=[("Contoso.Lib", "2.0.0.0", CONTOSO_PUBLISHER)])
    inventory = StaticInventory([installed_package("Contoso.Lib", "1.9.0.0", CONTOSO_PUBLISHER)])

    result = DependencyResolver(inventory).resolve(app)

    assert result.dependencies[0].is_installed is True
    assert any("2.0.0.0 or later is required" in w for w in result.warnings)


def test_no_dependencies(make_package, empty_inventory):
    result = DependencyResolver(empty_inventory).resolve(
        make_package(), ResolveOptions(recursive=True, include_optional=True)
    )

    assert result.total_dependencies == 0
    assert result.installation_order == []
    _assert_consistent(result)


def test_accepts_manifest_file(make_package, empty_inventory):
    app = make_package(dependencies=[("Contoso.Lib", "1.0.0.0", CONTOSO_PUBLISHER)])

    result = DependencyResolver(empty_inventory).resolve(app / "AppxManifest.xml")

    assert result.missing_count == 1


def test_missing_manifest(tmp_path: Path, empty_inventory):
    with pytest.raises(ManifestNotFoundError):
        DependencyResolver(empty_inventory).resolve(tmp_path)


def test_unreadable_child_manifest_is_a_warning(make_package, installed_package):
    app = make_package(dependencies=[("Contoso.Broken", "1.0.0.0", CONTOSO_PUBLISHER)])
    broken = make_package("Broken", name="Contoso.Broken")
    (broken / "AppxManifest.xml").write_text("<Package><Identity", encoding="utf-8")
    inventory = StaticInventory(
        [installed_package("Contoso.Broken", "1.0.0.0", CONTOSO_PUBLISHER, install_location=broken)]
    )

    result = DependencyResolver(inventory).resolve(app, ResolveOptions(recursive=True))

    assert result.installed_count == 1
    assert any("Cannot read manifest of Contoso.Broken" in w for w in result.warnings)


class _FailingInventory:
    def find(self, name, publisher=None):
        raise InventoryError("powershell not available")

    def list_packages(self):
        raise InventoryError("powershell not available")


def test_inventory_failures_become_warnings(make_package):
    app = make_package(dependencies=[("Contoso.Lib", "1.0.0.0", CONTOSO_PUBLISHER)])

    result = DependencyResolver(_FailingInventory()).resolve(
        app, ResolveOptions(include_optional=True)
    )

    assert result.missing_count == 1
    assert len(result.warnings) == 2


def test_result_serializes_counts(chain):
    app, inventory = chain

    data = DependencyResolver(inventory).resolve(app).model_dump()

    assert data["total_dependencies"] == 1
    assert data["installed_count"] == 1
    assert data["installation_order"] == ["Contoso.A_1.5.0.0_x64"]
