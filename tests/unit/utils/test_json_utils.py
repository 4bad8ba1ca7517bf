"""Tests for JSON utility functions."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel
import pytest

from bundlr.core.utils.json import read_json, write_json


@pytest.fixture
def temp_json_file(tmp_path):
    """Create a temporary JSON file path."""
    return tmp_path / "test.json"


def test_write_and_read_json(temp_json_file):
    """Test writing and reading JSON files."""
    data = {
        "string": "value",
        "number": 42,
        "float": 3.14,
        "bool": True,
        "none": None,
        "list": [1, 2, 3],
        "nested": {"key": "value"},
    }

    write_json(temp_json_file, data)

    assert read_json(temp_json_file) == data


def test_write_json_creates_parent_dirs(tmp_path):
    """Test that write_json creates parent directories."""
    nested_path = tmp_path / "subdir" / "nested" / "test.json"

    write_json(nested_path, {"test": "value"})

    assert read_json(nested_path) == {"test": "value"}


def test_string_paths(temp_json_file):
    """Test write_json and read_json with string paths."""
    write_json(str(temp_json_file), {"test": "value"})

    assert read_json(str(temp_json_file)) == {"test": "value"}


def test_write_json_serializes_paths_models_and_sets(temp_json_file):
    """Paths become forward-slash strings, models dicts and sets sorted lists."""

    class Item(BaseModel):
        name: str

    write_json(
        temp_json_file,
        {"path": Path("Packages") / "app.msix", "item": Item(name="x"), "tags": {"b", "a"}},
    )

    assert read_json(temp_json_file) == {
        "path": "Packages/app.msix",
        "item": {"name": "x"},
        "tags": ["a", "b"],
    }


def test_read_json_accepts_utf8_bom(temp_json_file):
    """Files written by Windows PowerShell carry a BOM."""
    temp_json_file.write_bytes(b"\xef\xbb\xbf" + b'{"Name": "Contoso"}')

    assert read_json(temp_json_file) == {"Name": "Contoso"}


def test_read_json_file_not_found(tmp_path):
    """Test reading non-existent JSON file."""
    with pytest.raises(FileNotFoundError):
        read_json(tmp_path / "does_not_exist.json")


def test_read_json_invalid_json(temp_json_file):
    """Test reading invalid JSON."""
    temp_json_file.write_text("{ invalid json }")

    with pytest.raises(json.JSONDecodeError):
        read_json(temp_json_file)


def test_read_json_rejects_non_object(temp_json_file):
    temp_json_file.write_text("[1, 2]")

    with pytest.raises(ValueError, match="Expected JSON object"):
        read_json(temp_json_file)


def test_write_json_pretty_formatting(temp_json_file):
    """Test that JSON is written with pretty formatting."""
    write_json(temp_json_file, {"key1": "value1", "key2": {"nested": "value2"}})

    text = temp_json_file.read_text()
    assert "\n" in text
    assert "  " in text


def test_write_json_unicode(temp_json_file):
    """Test writing JSON with unicode characters."""
    data = {"name": "Café Contoso", "chinese": "你好"}

    write_json(temp_json_file, data)

    assert read_json(temp_json_file) == data
    assert "你好" in temp_json_file.read_text(encoding="utf-8")
