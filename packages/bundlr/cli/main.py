"""Command-line interface for bundlr."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

from rich.console import Console
from rich.table import Table

from bundlr.core.archive import (
    ArchiveComposer,
    CompressionLevel,
    DirectoryCertificateSource,
    ManifestData,
)
from bundlr.core.backup import BackupOptions, BackupService
from bundlr.core.builder import BuildOptions, BuildToolFailedError, PackageBuilder
from bundlr.core.config import AppConfig, apply_logging_config, load_app_config
from bundlr.core.context import ToolContext
from bundlr.core.dependencies import (
    CommandInventory,
    DependencyResolver,
    DependencyResult,
    InventoryProvider,
    ResolveOptions,
    StaticInventory,
)
from bundlr.core.errors import BundlrError
from bundlr.core.manifest import ManifestReader, ManifestRecord, locate_manifest
from bundlr.core.process import ProcessRunner
from bundlr.core.utils.logging import get_logger

console = Console()
logger = get_logger(__name__)


def _manifest_file(path: Path) -> Path:
    if path.is_dir():
        located = locate_manifest(path)
        if located is None:
            raise BundlrError(f"No package manifest found in {path}")
        return located
    return path


def _runner(config: AppConfig) -> ProcessRunner:
    return ProcessRunner(config.process, ToolContext(config.tools))


def _inventory(args: argparse.Namespace, config: AppConfig) -> InventoryProvider:
    if args.inventory:
        return StaticInventory.from_json_file(args.inventory)
    return CommandInventory(_runner(config), config.dependencies.inventory_command)


def _print_record(record: ManifestRecord) -> None:
    identity = record.identity
    table = Table(title=f"{identity.name}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Display name", record.display_name)
    table.add_row("Publisher", identity.publisher)
    table.add_row("Publisher display name", record.publisher_display_name)
    table.add_row("Version", identity.version)
    table.add_row("Architecture", identity.architecture)
    table.add_row("Family", identity.family_id)
    table.add_row("Full name", identity.full_id)
    table.add_row("Bundle", str(record.is_bundle))
    table.add_row("Framework", str(record.is_framework))
    table.add_row("Modern format", str(record.is_modern_format))
    table.add_row("Applications", ", ".join(a.id for a in record.applications) or "-")
    table.add_row("Capabilities", ", ".join(record.capabilities) or "-")
    console.print(table)

    if record.dependencies:
        deps = Table(title="Declared dependencies")
        deps.add_column("Name")
        deps.add_column("Min version")
        deps.add_column("Publisher")
        for dep in record.dependencies:
            deps.add_row(dep.name, dep.min_version, dep.publisher)
        console.print(deps)


def _print_dependencies(result: DependencyResult) -> None:
    table = Table(title=f"Dependencies of {result.package_name}")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Type")
    table.add_column("Depth", justify="right")
    table.add_column("Installed")
    for index, entry in enumerate(result.ordered(), start=1):
        installed = "[green]yes[/green]" if entry.is_installed else "[red]no[/red]"
        table.add_row(
            str(index),
            entry.name,
            entry.version,
            entry.dependency_type.value,
            str(entry.depth),
            installed,
        )
    console.print(table)
    console.print(
        f"Total {result.total_dependencies}: {result.installed_count} installed, "
        f"{result.missing_count} missing, {result.framework_count} framework"
    )
    for warning in result.warnings:
        console.print(f"[yellow]WARNING:[/yellow] {warning}")


def cmd_inspect(args: argparse.Namespace, config: AppConfig) -> int:
    record = ManifestReader().parse(
        _manifest_file(Path(args.path)),
        include_dependencies=not args.no_dependencies,
        include_capabilities=not args.no_capabilities,
    )
    if args.json:
        console.print_json(record.model_dump_json())
    else:
        _print_record(record)
    return 0


def cmd_deps(args: argparse.Namespace, config: AppConfig) -> int:
    resolver = DependencyResolver(
        _inventory(args, config),
        framework_patterns=config.dependencies.framework_patterns,
    )
    result = resolver.resolve(
        Path(args.path),
        ResolveOptions(
            include_optional=args.include_optional,
            recursive=args.recursive,
            max_depth=args.max_depth
            if args.max_depth is not None
            else config.dependencies.max_depth,
        ),
    )
    if args.json:
        console.print_json(result.model_dump_json())
    else:
        _print_dependencies(result)
    return 0


def cmd_build(args: argparse.Namespace, config: AppConfig) -> int:
    builder = PackageBuilder(config.builder, _runner(config))
    result = builder.build(
        args.source,
        args.output,
        BuildOptions(
            validate_manifest=not args.no_validate,
            overwrite=not args.no_overwrite,
            allow_fallback=not args.no_fallback,
            skip_tool_validation=args.skip_tool_validation,
            force_staging=args.stage,
        ),
    )
    for warning in result.warnings:
        console.print(f"[yellow]WARNING:[/yellow] {warning}")
    if not result.production_ready:
        console.print(
            "[bold yellow]The package was built without the SDK packaging tool and "
            "cannot be signed or installed.[/bold yellow]"
        )
    console.print(
        f"[green]Built[/green] {result.output_path} "
        f"({result.size_bytes / 1024**2:.1f} MB, {result.duration_seconds:.1f}s)"
    )
    return 0


def cmd_compose(args: argparse.Namespace, config: AppConfig) -> int:
    manifest_path = _manifest_file(Path(args.manifest))
    record = ManifestReader().parse(manifest_path, include_capabilities=False)
    dependencies = []
    if args.resolve:
        resolver = DependencyResolver(
            _inventory(args, config),
            framework_patterns=config.dependencies.framework_patterns,
        )
        dependencies = resolver.resolve(
            manifest_path, ResolveOptions(include_optional=args.include_optional)
        ).ordered()

    composer = ArchiveComposer(config.archive)
    result = composer.compose(
        args.source_dir,
        args.output,
        ManifestData(
            record=record,
            dependencies=dependencies,
            is_development_mode=args.dev_mode,
        ),
        args.compression,
    )
    for warning in result.warnings:
        console.print(f"[yellow]WARNING:[/yellow] {warning}")
    console.print(
        f"[green]Composed[/green] {result.output_path}: {result.package_count} packages, "
        f"{result.certificate_count} certificates, {result.size_bytes / 1024**2:.1f} MB"
    )
    return 0


def cmd_backup(args: argparse.Namespace, config: AppConfig) -> int:
    runner = _runner(config)
    inventory = (
        StaticInventory.from_json_file(args.inventory)
        if args.inventory
        else CommandInventory(runner, config.dependencies.inventory_command)
    )
    service = BackupService(
        config,
        runner=runner,
        inventory=inventory,
        certificates=DirectoryCertificateSource(args.certificates) if args.certificates else None,
    )
    result = service.backup(
        args.package,
        args.output,
        BackupOptions(
            include_dependencies=not args.no_dependencies,
            include_optional=args.include_optional,
            compression=args.compression,
            is_development_mode=args.dev_mode,
            build=BuildOptions(allow_fallback=not args.no_fallback),
        ),
    )
    for warning in result.warnings:
        console.print(f"[yellow]WARNING:[/yellow] {warning}")
    console.print(
        f"[green]Backup written to[/green] {result.archive.output_path} "
        f"({result.archive.package_count} packages, "
        f"{result.archive.certificate_count} certificates)"
    )
    return 0


COMMANDS = {
    "inspect": cmd_inspect,
    "deps": cmd_deps,
    "build": cmd_build,
    "compose": cmd_compose,
    "backup": cmd_backup,
}


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="bundlr",
        description="bundlr - package, resolve and archive Windows app packages",
    )
    p.add_argument("--config", default=None, help="Path to config YAML/JSON (default: bundlr.yaml)")
    p.add_argument("--log-level", default=None, help="Override the configured log level")
    p.add_argument("--log-json", action="store_true", help="Write JSON log lines to stderr")
    sub = p.add_subparsers(dest="cmd", required=True)

    compression = [c.value for c in CompressionLevel]

    inspect = sub.add_parser("inspect", help="Show the identity and contents of a manifest")
    inspect.add_argument("path", help="Package directory or manifest file")
    inspect.add_argument("--no-dependencies", action="store_true")
    inspect.add_argument("--no-capabilities", action="store_true")
    inspect.add_argument("--json", action="store_true", help="Print the record as JSON")

    deps = sub.add_parser("deps", help="Resolve dependencies against installed packages")
    deps.add_argument("path", help="Package directory or manifest file")
    deps.add_argument("--recursive", action="store_true")
    deps.add_argument("--include-optional", action="store_true", help="Add framework packages")
    deps.add_argument("--max-depth", type=int, default=None)
    deps.add_argument("--inventory", help="JSON inventory snapshot instead of a live query")
    deps.add_argument("--json", action="store_true")

    build = sub.add_parser("build", help="Build a package from an unpacked tree")
    build.add_argument("source", help="Unpacked package directory")
    build.add_argument("output", help="Output package file")
    build.add_argument("--no-validate", action="store_true", help="Skip manifest/asset checks")
    build.add_argument("--no-overwrite", action="store_true")
    build.add_argument("--no-fallback", action="store_true", help="Fail if makeappx is missing")
    build.add_argument("--skip-tool-validation", action="store_true")
    build.add_argument("--stage", action="store_true", help="Always copy to scratch first")

    compose = sub.add_parser("compose", help="Compose an archive from built packages")
    compose.add_argument("source_dir", help="Directory with package and certificate files")
    compose.add_argument("output", help="Output archive (.zip)")
    compose.add_argument("--manifest", required=True, help="Main package directory or manifest")
    compose.add_argument("--resolve", action="store_true", help="Resolve dependencies")
    compose.add_argument("--include-optional", action="store_true")
    compose.add_argument("--inventory", help="JSON inventory snapshot instead of a live query")
    compose.add_argument("--compression", choices=compression, default=None)
    compose.add_argument("--dev-mode", action="store_true")

    backup = sub.add_parser("backup", help="Back up an installed package with dependencies")
    backup.add_argument("package", help="Installed package directory")
    backup.add_argument("output", help="Output archive (.zip)")
    backup.add_argument("--certificates", help="Directory with signing certificates")
    backup.add_argument("--inventory", help="JSON inventory snapshot instead of a live query")
    backup.add_argument("--no-dependencies", action="store_true")
    backup.add_argument("--include-optional", action="store_true")
    backup.add_argument("--no-fallback", action="store_true")
    backup.add_argument("--compression", choices=compression, default=None)
    backup.add_argument("--dev-mode", action="store_true")

    return p


def run(argv: list[str] | None = None) -> int:
    """Parse ``argv`` and run one command; returns the exit code."""
    args = build_arg_parser().parse_args(argv)
    try:
        config = load_app_config(args.config)
    except (OSError, ValueError) as e:
        console.print(f"[red]ERROR: Could not load config: {e}[/red]")
        return 2

    if args.log_level:
        config.logging.level = args.log_level.upper()
    if args.log_json:
        config.logging.structured = True
    apply_logging_config(config)

    try:
        return COMMANDS[args.cmd](args, config)
    except BuildToolFailedError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        if e.result is not None and e.result.combined_output:
            console.print(e.result.combined_output[-4000:], markup=False, highlight=False)
        return 1
    except BundlrError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]ERROR: {e}[/red]")
        return 1


def main() -> None:
    """Main entry point for CLI."""
    sys.exit(run())


if __name__ == "__main__":
    main()
