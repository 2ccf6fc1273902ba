"""CLI interface for unit-discovery."""

import logging

import click

from unit_discovery import __version__

logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    help="Show the unit-discovery version and exit.",
)
@click.pass_context
def main(ctx: click.Context, version: bool) -> None:
    """Unit discovery - find Python modules across directories and archives.

    \b
      unit-discovery scan a.b                 Units under namespace a.b
      unit-discovery scan ./src               Units in a directory tree
      unit-discovery scan dist/pkg.whl        Units in an archive
    """
    if version:
        click.echo(__version__)
        ctx.exit()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def register_commands() -> None:
    """Register all commands with the main CLI."""
    from unit_discovery.cli.scan import scan

    main.add_command(scan)


register_commands()

__all__ = ["main"]
