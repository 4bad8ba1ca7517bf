"""Fixtures for builder tests: fake packaging tools and builder settings."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
import stat
import sys

import pytest

from bundlr.core.config import BuilderConfig

FAKE_TOOL = """#!{python}
import json
import pathlib
import sys

args = sys.argv[1:]
mapping = None
if "/f" in args:
    mapping = pathlib.Path(args[args.index("/f") + 1]).read_text(encoding="utf-8")
pathlib.Path({log!r}).write_text(json.dumps({{"args": args, "mapping": mapping}}))
if {exit_code} == 0 and "/p" in args:
    pathlib.Path(args[args.index("/p") + 1]).write_bytes(b"PK-fake-package")
sys.stdout.write({stdout!r})
sys.stderr.write({stderr!r})
sys.exit({exit_code})
"""


@pytest.fixture
def fake_tool(tmp_path: Path) -> Callable[..., tuple[Path, Path]]:
    """Factory writing an executable script that records its arguments.

    Returns ``(executable, log_file)``; the log holds ``{"args": [...], "mapping": str}``.
    """

    def _make(
        name: str = "makeappx", exit_code: int = 0, stdout: str = "", stderr: str = ""
    ) -> tuple[Path, Path]:
        tools_dir = tmp_path / "tools"
        tools_dir.mkdir(exist_ok=True)
        log = tools_dir / f"{name}.log.json"
        script = tools_dir / name
        script.write_text(
            FAKE_TOOL.format(
                python=sys.executable,
                log=str(log),
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
            ),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
        return script, log

    return _make


@pytest.fixture
def builder_config(tmp_path: Path) -> BuilderConfig:
    return BuilderConfig(
        scratch_dir=str(tmp_path / "scratch"),
        protected_roots=[str(tmp_path / "WindowsApps")],
        cleanup_base_delay_seconds=0.0,
        disk_space_margin_mb=0,
    )
