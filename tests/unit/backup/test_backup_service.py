"""Tests for BackupService: resolve, build, collect certificates and compose."""

from __future__ import annotations

from pathlib import Path
import zipfile

import pytest

from bundlr.core.archive import DirectoryCertificateSource
from bundlr.core.backup import BackupOptions, BackupService, package_file_name
from bundlr.core.builder import BackendKind, BuildOptions, BuildToolFailedError
from bundlr.core.config import AppConfig, BuilderConfig, ToolsConfig
from bundlr.core.dependencies import ManifestNotFoundError, StaticInventory
from tests.conftest import CONTOSO_PUBLISHER, MICROSOFT_PUBLISHER

pytestmark = pytest.mark.usefixtures("no_path")


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        builder=BuilderConfig(
            scratch_dir=str(tmp_path / "scratch"),
            protected_roots=[],
            cleanup_base_delay_seconds=0.0,
            disk_space_margin_mb=0,
        )
    )


@pytest.fixture
def app(make_package):
    return make_package(
        dependencies=[
            ("Contoso.Lib", "2.0.0.0", CONTOSO_PUBLISHER),
            ("Contoso.Missing", "1.0.0.0", CONTOSO_PUBLISHER),
        ]
    )


@pytest.fixture
def inventory(make_package, installed_package) -> StaticInventory:
    lib = make_package("Contoso.Lib", name="Contoso.Lib", version="2.0.0.0")
    vclibs = make_package(
        "Microsoft.VCLibs.140.00",
        name="Microsoft.VCLibs.140.00",
        version="14.0.33519.0",
        publisher=MICROSOFT_PUBLISHER,
        framework=True,
    )
    return StaticInventory(
        [
            installed_package(
                "Contoso.Lib", "2.0.0.0", CONTOSO_PUBLISHER, install_location=lib
            ),
            installed_package(
                "Microsoft.VCLibs.140.00",
                "14.0.33519.0",
                install_location=vclibs,
                is_framework=True,
            ),
        ]
    )


@pytest.fixture
def certificates(tmp_path, make_certificate) -> DirectoryCertificateSource:
    make_certificate(tmp_path / "certs" / "contoso.cer", CONTOSO_PUBLISHER)
    return DirectoryCertificateSource(tmp_path / "certs")


def test_package_file_name():
    assert package_file_name("Contoso.App", "1.2.0.0", "x64") == "Contoso.App_1.2.0.0_x64.msix"
    assert (
        package_file_name("Contoso.App", "1.2.0.0", "neutral", is_bundle=True)
        == "Contoso.App_1.2.0.0_neutral.msixbundle"
    )


def test_default_runner_uses_configured_tools(tmp_path):
    tool = tmp_path / "sdk" / "makeappx"
    tool.parent.mkdir()
    tool.write_text("")
    config = AppConfig(tools=ToolsConfig(paths={"makeappx": str(tool)}))

    service = BackupService(config, inventory=StaticInventory())

    assert service.runner.tools.resolve("makeappx") == tool
    assert service.builder.tools.resolve("makeappx") == tool


def test_backup_with_dependencies(tmp_path, config, app, inventory, certificates):
    output = tmp_path / "out" / "backup.zip"
    service = BackupService(config, inventory=inventory, certificates=certificates)

    result = service.backup(app, output)

    assert result.main_package.backend is BackendKind.ARCHIVE
    assert result.main_package.production_ready is False
    assert [Path(p.output_path).name for p in result.dependency_packages] == [
        "Contoso.Lib_2.0.0.0_x64.msix"
    ]
    assert result.dependencies is not None
    assert result.dependencies.total_dependencies == 2

    archive = result.archive
    assert archive.package_count == 2
    assert archive.certificate_count == 1
    manifest = archive.manifest
    assert manifest.total_packages == 3
    assert manifest.installation_order[-1] == "Contoso.App_1.2.0.0_x64"
    assert set(manifest.installation_order[:-1]) == {
        "Contoso.Lib_2.0.0.0_x64",
        "Contoso.Missing_1.0.0.0_neutral",
    }
    assert manifest.main_package.certificate_file == "Certificates/contoso.cer"
    by_name = {d.name: d for d in manifest.dependencies}
    assert by_name["Contoso.Lib"].package_file == "Packages/Contoso.Lib_2.0.0.0_x64.msix"
    assert by_name["Contoso.Missing"].package_file is None
    assert by_name["Contoso.Missing"].is_installed is False

    assert any("Contoso.Missing is not installed" in w for w in result.warnings)
    assert any("falling back to a plain archive" in w for w in result.warnings)
    with zipfile.ZipFile(output) as zf:
        names = zf.namelist()
    assert "Packages/Contoso.App_1.2.0.0_x64.msix" in names
    assert "Certificates/contoso.cer" in names
    assert list((tmp_path / "scratch").iterdir()) == []


def test_backup_includes_optional_frameworks(tmp_path, config, app, inventory, certificates):
    service = BackupService(config, inventory=inventory, certificates=certificates)

    result = service.backup(
        app, tmp_path / "backup.zip", BackupOptions(include_optional=True)
    )

    assert result.archive.package_count == 3
    framework = next(
        d for d in result.archive.manifest.dependencies if d.name == "Microsoft.VCLibs.140.00"
    )
    assert framework.dependency_type == "framework"
    assert framework.package_file == "Packages/Microsoft.VCLibs.140.00_14.0.33519.0_x64.msix"
    assert "No certificate found for Microsoft.VCLibs.140.00" in result.warnings


def test_backup_without_dependencies(tmp_path, config, app, inventory):
    service = BackupService(config, inventory=inventory)

    result = service.backup(
        app, tmp_path / "backup.zip", BackupOptions(include_dependencies=False)
    )

    assert result.dependencies is None
    assert result.dependency_packages == []
    assert result.archive.package_count == 1
    assert result.archive.certificate_count == 0
    assert result.archive.manifest.installation_order == ["Contoso.App_1.2.0.0_x64"]


def test_dependency_build_failure_is_a_warning(
    tmp_path, config, app, installed_package
):
    broken = tmp_path / "broken-lib"
    broken.mkdir()
    inventory = StaticInventory(
        [installed_package("Contoso.Lib", "2.0.0.0", CONTOSO_PUBLISHER, install_location=broken)]
    )
    service = BackupService(config, inventory=inventory)

    result = service.backup(app, tmp_path / "backup.zip")

    assert result.dependency_packages == []
    assert result.archive.package_count == 1
    assert any("Contoso.Lib could not be packaged" in w for w in result.warnings)


def test_main_build_failure_propagates(tmp_path, config, app, empty_inventory):
    service = BackupService(config, inventory=empty_inventory)

    with pytest.raises(BuildToolFailedError) as exc_info:
        service.backup(
            app,
            tmp_path / "backup.zip",
            BackupOptions(build=BuildOptions(allow_fallback=False)),
        )

    assert exc_info.value.kind == "tool_missing"
    assert not (tmp_path / "backup.zip").exists()
    assert list((tmp_path / "scratch").iterdir()) == []


def test_missing_manifest(tmp_path, config, empty_inventory):
    empty = tmp_path / "not-a-package"
    empty.mkdir()

    with pytest.raises(ManifestNotFoundError):
        BackupService(config, inventory=empty_inventory).backup(empty, tmp_path / "b.zip")
