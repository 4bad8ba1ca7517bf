"""Configuration management for bundlr."""

from bundlr.core.config.loader import (
    apply_logging_config,
    detect_format,
    get_value,
    load_app_config,
    load_config,
)
from bundlr.core.config.models import (
    AppConfig,
    ArchiveConfig,
    BuilderConfig,
    DependencyConfig,
    ExitCodePolicyConfig,
    LoggingConfig,
    ProcessConfig,
    ToolsConfig,
)

__all__ = [
    # Loaders
    "load_config",
    "load_app_config",
    "detect_format",
    "get_value",
    "apply_logging_config",
    # Models
    "AppConfig",
    "ArchiveConfig",
    "BuilderConfig",
    "DependencyConfig",
    "ExitCodePolicyConfig",
    "LoggingConfig",
    "ProcessConfig",
    "ToolsConfig",
]
