"""Configuration loading with JSON and YAML support plus key-path lookup."""

from __future__ import annotations

from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel
import yaml

from bundlr.core.config.models import AppConfig
from bundlr.core.utils.json import read_json
from bundlr.core.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING = object()


def detect_format(file_path: Path | str) -> str:
    """Detect config file format from extension.

    Raises:
        ValueError: If format cannot be determined

    Example:
        >>> detect_format("bundlr.yml")
        'yaml'
    """
    suffix = Path(file_path).suffix.lower()
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    raise ValueError(f"Unsupported config format: {suffix}")


def load_config(path: str | Path) -> dict[str, Any]:
    """Load a raw configuration dictionary from JSON or YAML.

    Raises:
        FileNotFoundError: If config file does not exist
        ValueError: If format is not supported or content is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    if detect_format(path) == "json":
        try:
            return read_json(path)
        except ValueError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

    try:
        with path.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    # safe_load returns None for empty files
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Config root must be a mapping in {path}")
    return content


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration.

    A missing file at the default location yields all defaults; an explicitly
    given path must exist.

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ValidationError: If config is invalid
    """
    if path is None:
        default = AppConfig.default_path()
        if not default.exists():
            logger.debug("No config file found, using defaults")
            return AppConfig()
        path = default

    return AppConfig.model_validate(load_config(path))


def apply_logging_config(config: AppConfig) -> None:
    """Configure Python logging from the app config."""
    configure_logging(
        level=config.logging.level,
        format_string=config.logging.format,
        filename=config.logging.filename,
        structured=config.logging.structured,
    )


def get_value(source: BaseModel | dict[str, Any], key_path: str, fallback: T) -> Any | T:
    """Look up a dotted key path, returning ``fallback`` for any missing segment.

    Works on pydantic models and plain dicts, mixed at any depth.

    Example:
        >>> get_value(AppConfig(), "builder.disk_space_multiplier", 1.0)
        2.0
        >>> get_value({"a": {"b": 1}}, "a.c", "x")
        'x'
    """
    current: Any = source
    for segment in key_path.split("."):
        if not segment:
            return fallback
        if isinstance(current, BaseModel):
            current = getattr(current, segment, _MISSING)
        elif isinstance(current, dict):
            current = current.get(segment, _MISSING)
        else:
            return fallback
        if current is _MISSING or current is None:
            return fallback
    return current
