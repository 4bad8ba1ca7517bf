"""Configuration models for bundlr."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

MIB = 1024 * 1024


class ExitCodePolicyConfig(BaseModel):
    """Per-tool exit-code policy as written in config files.

    Exactly one of ``success_codes`` or ``success_below`` should be given.
    ``success_below=8`` means codes 0-7 succeed and 8+ fail.
    """

    model_config = ConfigDict(extra="forbid")

    success_codes: list[int] | None = None
    success_below: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _one_rule(self) -> ExitCodePolicyConfig:
        if self.success_codes is None and self.success_below is None:
            raise ValueError("exit-code policy needs success_codes or success_below")
        return self


class ProcessConfig(BaseModel):
    """External process execution settings."""

    default_timeout_seconds: float = Field(default=600.0, gt=0)
    max_output_bytes: int = Field(default=10 * MIB, gt=0, description="Cap per stream")
    reader_grace_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long to wait for output readers to drain after exit",
    )
    error_output_chars: int = Field(
        default=2000, gt=0, description="Stream excerpt length in failure messages"
    )
    policies: dict[str, ExitCodePolicyConfig] = Field(default_factory=dict)


class ToolsConfig(BaseModel):
    """Locations of external tools.

    ``paths`` maps a tool name (``makeappx``, ``robocopy``...) to an explicit
    executable. ``search_dirs`` are scanned before PATH, e.g. Windows SDK
    ``bin/<version>/x64`` directories.
    """

    paths: dict[str, str] = Field(default_factory=dict)
    search_dirs: list[str] = Field(default_factory=list)


class BuilderConfig(BaseModel):
    """Package builder settings."""

    disk_space_multiplier: float = Field(default=2.0, ge=1.0)
    disk_space_margin_mb: int = Field(default=100, ge=0)
    cleanup_attempts: int = Field(default=5, ge=1)
    cleanup_base_delay_seconds: float = Field(default=0.5, ge=0.0)
    build_timeout_seconds: float = Field(default=1800.0, gt=0)
    copy_timeout_seconds: float = Field(default=1800.0, gt=0)
    protected_roots: list[str] = Field(
        default_factory=lambda: [
            "C:/Program Files/WindowsApps",
            "C:/Windows/SystemApps",
        ],
        description="System-managed install roots that are copied before packaging",
    )
    scratch_dir: str | None = Field(default=None, description="Parent for scratch copies")


class DependencyConfig(BaseModel):
    """Dependency resolution settings."""

    max_depth: int = Field(default=3, ge=0)
    framework_patterns: list[str] = Field(
        default_factory=lambda: [
            "Microsoft.VCLibs.*",
            "Microsoft.NET.Native.Framework.*",
            "Microsoft.NET.Native.Runtime.*",
            "Microsoft.UI.Xaml.*",
            "Microsoft.WindowsAppRuntime.*",
            "Microsoft.Services.Store.Engagement",
        ]
    )
    inventory_command: list[str] = Field(
        default_factory=lambda: [
            "powershell",
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            "Get-AppxPackage | Select-Object Name,Publisher,Version,Architecture,"
            "InstallLocation,IsFramework | ConvertTo-Json -Depth 2",
        ]
    )


class ArchiveConfig(BaseModel):
    """Archive composition settings."""

    manifest_version: str = "1.0"
    minimum_platform_version: str = "10.0.17763.0"
    minimum_runtime_version: str = "5.1"
    requires_elevation: bool = False
    compression: str = Field(default="optimal", pattern="^(optimal|fastest|none)$")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    structured: bool = False
    filename: str | None = None


class AppConfig(BaseModel):
    """Application-level configuration."""

    model_config = ConfigDict(extra="ignore")

    process: ProcessConfig = ProcessConfig()
    tools: ToolsConfig = ToolsConfig()
    builder: BuilderConfig = BuilderConfig()
    dependencies: DependencyConfig = DependencyConfig()
    archive: ArchiveConfig = ArchiveConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def default_path(cls) -> Path:
        """Default path for application config."""
        return Path("bundlr.yaml")
