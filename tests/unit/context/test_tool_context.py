"""Tests for tool discovery."""

from __future__ import annotations

from pathlib import Path
import stat

import pytest

from bundlr.core.config import ToolsConfig
from bundlr.core.context import ToolContext


def _executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


def test_explicit_path_wins(tmp_path: Path) -> None:
    tool = _executable(tmp_path / "sdk" / "makeappx")

    tools = ToolContext.with_paths(makeappx=tool)

    assert tools.resolve("makeappx") == tool
    assert tools.is_available("makeappx")


def test_missing_explicit_path_falls_through(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))

    tools = ToolContext.with_paths(makeappx=tmp_path / "missing" / "makeappx")

    assert tools.resolve("makeappx") is None


def test_search_dirs(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    tool = _executable(tmp_path / "bin" / "makeappx.exe")

    tools = ToolContext(ToolsConfig(search_dirs=[str(tmp_path / "bin")]), use_sdk_dirs=False)

    assert tools.resolve("makeappx") == tool


def test_path_lookup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    tool = _executable(tmp_path / "path" / "rsync")
    monkeypatch.setenv("PATH", str(tmp_path / "path"))

    assert ToolContext(use_sdk_dirs=False).resolve("rsync") == tool


def test_results_are_cached_until_cleared(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path / "path"))
    tools = ToolContext(use_sdk_dirs=False)

    assert tools.resolve("rsync") is None
    tool = _executable(tmp_path / "path" / "rsync")
    assert tools.resolve("rsync") is None

    tools.clear()
    assert tools.resolve("rsync") == tool
