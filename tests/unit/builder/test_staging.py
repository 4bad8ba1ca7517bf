"""Tests for source staging and signature artifact handling."""

from __future__ import annotations

import json
from pathlib import Path
import shutil

import pytest

from bundlr.core.builder import (
    CopyFailedError,
    SourceStager,
    remove_signature_artifacts,
    staging,
    staging_reasons,
)
from bundlr.core.builder.staging import is_under
from bundlr.core.context import ToolContext
from bundlr.core.process import ProcessRunner


def _stager(tools: ToolContext) -> SourceStager:
    return SourceStager(ProcessRunner(tools=tools), tools, timeout_seconds=30)


@pytest.fixture
def source(make_package) -> Path:
    return make_package()


class TestStagingReasons:
    def test_plain_tree_needs_no_staging(self, source):
        assert staging_reasons(source, []) == []

    def test_protected_root(self, source, tmp_path):
        reasons = staging_reasons(source, [str(tmp_path).upper()])

        assert reasons == ["source is inside a protected install root"]

    def test_signature_artifacts(self, source):
        (source / "AppxMetadata").mkdir()
        (source / "AppxMetadata" / "CodeIntegrity.cat").write_bytes(b"cat")
        (source / "AppxBlockMap.xml").write_text("<BlockMap/>")

        reasons = staging_reasons(source, [])

        assert reasons == [
            "source carries signature artifacts: AppxBlockMap.xml, AppxMetadata/CodeIntegrity.cat"
        ]

    @pytest.mark.parametrize(
        ("path", "roots", "expected"),
        [
            ("C:/Program Files/WindowsApps/App", ["c:/program files/windowsapps"], True),
            ("C:/Program Files/WindowsApps", ["C:/Program Files/WindowsApps/"], True),
            ("C:/Program Files/WindowsAppsX/App", ["C:/Program Files/WindowsApps"], False),
            ("D:/apps/App", ["C:/Program Files/WindowsApps", ""], False),
        ],
    )
    def test_is_under(self, path, roots, expected):
        assert is_under(Path(path), roots) is expected


def test_remove_signature_artifacts(source):
    (source / "AppxSignature.p7x").write_bytes(b"sig")
    (source / "AppxSignature.p7x").chmod(0o444)
    (source / "AppxBlockMap.xml").write_text("<BlockMap/>")

    removed = remove_signature_artifacts(source)

    assert removed == ["AppxSignature.p7x", "AppxBlockMap.xml"]
    assert not (source / "AppxSignature.p7x").exists()
    assert remove_signature_artifacts(source) == []


class TestSourceStager:
    def test_copytree_when_no_mirror_tool(self, source, tmp_path, no_path):
        destination = tmp_path / "scratch" / "copy"

        outcome = _stager(ToolContext.with_paths()).copy(source, destination)

        assert outcome.strategy == "copytree"
        assert outcome.skipped == []
        assert (destination / "AppxManifest.xml").read_bytes() == (
            source / "AppxManifest.xml"
        ).read_bytes()
        assert (destination / "Assets" / "StoreLogo.png").exists()

    def test_mirror_tool_is_used(self, source, tmp_path, fake_tool, no_path):
        rsync, log = fake_tool("rsync")
        destination = tmp_path / "copy"

        outcome = _stager(ToolContext.with_paths(rsync=rsync)).copy(source, destination)

        assert outcome.strategy == "mirror"
        args = json.loads(log.read_text())["args"]
        assert args == ["-a", "--delete", f"{source}/", f"{destination}/"]

    def test_robocopy_preferred_and_low_codes_succeed(self, source, tmp_path, fake_tool, no_path):
        robocopy, log = fake_tool("robocopy", exit_code=3)
        rsync, rsync_log = fake_tool("rsync")
        destination = tmp_path / "copy"

        outcome = _stager(ToolContext.with_paths(robocopy=robocopy, rsync=rsync)).copy(
            source, destination
        )

        assert outcome.strategy == "mirror"
        args = json.loads(log.read_text())["args"]
        assert args[:3] == [str(source), str(destination), "/MIR"]
        assert not rsync_log.exists()

    def test_failed_mirror_falls_through_to_copytree(self, source, tmp_path, fake_tool, no_path):
        rsync, _log = fake_tool("rsync", exit_code=23, stderr="rsync error: some files failed")
        destination = tmp_path / "copy"

        outcome = _stager(ToolContext.with_paths(rsync=rsync)).copy(source, destination)

        assert outcome.strategy == "copytree"
        assert (destination / "Contoso.exe").exists()

    def test_per_file_when_copytree_fails(self, source, tmp_path, no_path, monkeypatch):
        def broken_copytree(*args, **kwargs):
            raise shutil.Error([("a", "b", "unreadable")])

        monkeypatch.setattr(staging.shutil, "copytree", broken_copytree)
        destination = tmp_path / "copy"

        outcome = _stager(ToolContext.with_paths()).copy(source, destination)

        assert outcome.strategy == "per_file"
        assert (destination / "Assets" / "Square44x44Logo.png").exists()

    def test_per_file_skips_unreadable_files(self, source, tmp_path, no_path, monkeypatch):
        real_copy2 = shutil.copy2

        def selective_copy2(src, dst, *args, **kwargs):
            if Path(src).name == "Contoso.exe":
                raise PermissionError(13, "Permission denied", str(src))
            return real_copy2(src, dst, *args, **kwargs)

        def broken_copytree(*args, **kwargs):
            raise OSError("copytree unavailable")

        monkeypatch.setattr(staging.shutil, "copytree", broken_copytree)
        monkeypatch.setattr(staging.shutil, "copy2", selective_copy2)

        outcome = _stager(ToolContext.with_paths()).copy(source, tmp_path / "copy")

        assert outcome.strategy == "per_file"
        assert outcome.skipped == ["Contoso.exe"]
        assert (tmp_path / "copy" / "AppxManifest.xml").exists()

    def test_all_strategies_fail(self, tmp_path, no_path):
        with pytest.raises(CopyFailedError) as exc_info:
            _stager(ToolContext.with_paths()).copy(tmp_path / "missing", tmp_path / "copy")

        attempts = exc_info.value.attempts
        assert [a.split(":")[0] for a in attempts] == ["mirror", "copytree", "per_file"]
