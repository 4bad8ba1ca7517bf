"""Shared utilities for bundlr."""

from bundlr.core.utils.fs import directory_size, remove_tree
from bundlr.core.utils.json import read_json, write_json

__all__ = [
    "directory_size",
    "read_json",
    "remove_tree",
    "write_json",
]
