"""Scan command - run a discovery from the command line."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.table import Table

from unit_discovery.cli.logging import configure_cli_logging
from unit_discovery.cli.rich_output import should_use_rich
from unit_discovery.config.scan_config import ScanConfiguration, iter_terms
from unit_discovery.discovery.engine import DiscoveryEngine
from unit_discovery.discovery.resolvers import (
    ImportResolver,
    SpecResolver,
    marker_filter,
)

if TYPE_CHECKING:
    from unit_discovery.models import Location

logger = logging.getLogger(__name__)


def parse_root(value: str) -> str | Path:
    """Treat existing paths and separator-bearing values as paths, else namespaces."""
    if os.sep in value or "/" in value or Path(value).exists():
        return Path(value)
    return value


def _unit_name(unit: Any) -> str:
    return str(getattr(unit, "name", unit))


def _unit_origin(unit: Any) -> str:
    return str(getattr(unit, "origin", ""))


@click.command()
@click.argument("roots", nargs=-1, required=True)
@click.option(
    "--search-path",
    "-p",
    "search_path",
    multiple=True,
    type=click.Path(),
    help="Search path entry (repeatable). Default: the interpreter's sys.path.",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with scan options.",
)
@click.option(
    "--import/--no-import",
    "use_import",
    default=False,
    help="Import each unit instead of only locating it. Runs module code.",
)
@click.option(
    "--tag",
    default=None,
    help="Keep only units whose module defines this attribute (needs --import).",
)
@click.option(
    "--anonymous/--no-anonymous",
    default=None,
    help="Include units whose name carries the anonymous marker.",
)
@click.option(
    "--nested/--no-nested",
    default=None,
    help="Enter archives nested in non-root archives.",
)
@click.option(
    "--root-nested/--no-root-nested",
    default=None,
    help="Enter archives nested directly in a root archive.",
)
@click.option(
    "--ignore-prefix",
    multiple=True,
    help="Ignore units whose name starts with this (repeatable, comma-separated).",
)
@click.option(
    "--ignore-archive",
    multiple=True,
    help="Skip archives whose name contains this term (repeatable).",
)
@click.option("--grouped", is_flag=True, help="Group units by originating root.")
@click.option("--verbose", "-v", is_flag=True, help="Show INFO-level logs.")
@click.option("--show-errors", is_flag=True, help="List every reported error.")
def scan(
    roots: tuple[str, ...],
    search_path: tuple[str, ...],
    config_file: Path | None,
    use_import: bool,
    tag: str | None,
    anonymous: bool | None,
    nested: bool | None,
    root_nested: bool | None,
    ignore_prefix: tuple[str, ...],
    ignore_archive: tuple[str, ...],
    grouped: bool,
    verbose: bool,
    show_errors: bool,
) -> None:
    """Discover units under namespaces, directories or archives.

    \b
    Examples:
      unit-discovery scan a.b -p ./classes -p ./lib/extra.zip
      unit-discovery scan ./src --no-anonymous
      unit-discovery scan app.plugins --import --tag PLUGIN
      unit-discovery scan dist/app.whl --root-nested --grouped

    ROOTS that exist on disk or contain a path separator are scanned as
    directories or archives; anything else is a namespace looked up on the
    search path.
    """
    use_rich = should_use_rich()
    log_file = configure_cli_logging("scan", verbose=verbose)
    logger.debug(f"Logging to {log_file}")

    if tag and not use_import:
        raise click.UsageError("--tag needs --import to inspect module attributes")

    errors: list[BaseException] = []
    callbacks: dict[str, Any] = {"error_handler": errors.append}
    if tag:
        callbacks["tag_filter"] = marker_filter(tag)

    try:
        if config_file is not None:
            config = ScanConfiguration.load(config_file, **callbacks)
        else:
            config = ScanConfiguration(**callbacks)
    except (OSError, ValueError, TypeError) as e:
        raise click.ClickException(f"Invalid scan config: {e}") from e

    overrides: dict[str, Any] = {}
    if anonymous is not None:
        overrides["include_anonymous_units"] = anonymous
    if nested is not None:
        overrides["ignore_nested_archives"] = not nested
    if root_nested is not None:
        overrides["ignore_root_archive"] = not root_nested
    if ignore_prefix:
        prefixes = iter_terms(ignore_prefix)
        overrides["ignore_namespace_prefixes"] = (
            config.ignore_namespace_prefixes | prefixes
        )
    if ignore_archive:
        terms = iter_terms(ignore_archive)
        overrides["ignore_archive_name_terms"] = (
            config.ignore_archive_name_terms | terms
        )
    if overrides:
        config = config.with_overrides(**overrides)

    paths = list(search_path) if search_path else None
    if use_import and paths:
        # Imports resolve against sys.path
        sys.path[:0] = [p for p in paths if p not in sys.path]

    resolver = ImportResolver() if use_import else SpecResolver()
    parsed = [parse_root(r) for r in roots]

    with DiscoveryEngine(resolver, search_path=paths) as engine:
        if grouped:
            groups = engine.discover_grouped(parsed, config)
            units = set().union(*groups.values()) if groups else set()
        else:
            groups = None
            units = engine.discover(parsed, config)
        stats = engine.last_stats

    console = Console() if use_rich else None
    if groups is not None:
        _print_grouped(groups, console)
    else:
        _print_units(units, console)

    summary = f"{len(units)} units"
    if stats is not None:
        summary += f", {stats.containers} containers, {stats.elapsed:.2f}s"
    if errors:
        summary += f", {len(errors)} errors"
    click.echo(summary, err=True)

    if show_errors:
        for error in errors:
            click.echo(f"  {type(error).__name__}: {error}", err=True)


def _print_units(units: set[Any], console: Console | None) -> None:
    ordered = sorted(units, key=_unit_name)
    if console is None:
        for unit in ordered:
            click.echo(_unit_name(unit))
        return

    table = Table(title="Discovered Units")
    table.add_column("Unit", style="cyan")
    table.add_column("Origin", style="dim")
    for unit in ordered:
        table.add_row(_unit_name(unit), _unit_origin(unit))

    if table.row_count == 0:
        console.print("[dim]No units found.[/dim]")
    else:
        console.print(table)


def _print_grouped(groups: dict[Location, set[Any]], console: Console | None) -> None:
    for location in sorted(groups, key=lambda loc: loc.key):
        units = sorted(groups[location], key=_unit_name)
        if console is None:
            click.echo(f"{location.key}:")
            for unit in units:
                click.echo(f"  {_unit_name(unit)}")
            continue

        table = Table(title=location.key)
        table.add_column("Unit", style="cyan")
        for unit in units:
            table.add_row(_unit_name(unit))
        console.print(table)
