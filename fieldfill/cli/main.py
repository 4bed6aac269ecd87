#!/usr/bin/env python3
"""Main CLI entry point for fieldfill."""
from __future__ import annotations

import logging
import sys

import click
from rich.console import Console

from fieldfill.config import get_settings

from .commands import duplicates, fill, inspect

console = Console()


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
@click.version_option(version="0.1.0", prog_name="fieldfill")
def cli(verbose: int):
    """
    fieldfill - detect form fields on a page and fill them from stored values.

    Run 'fieldfill COMMAND --help' for details on each command.
    """
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, get_settings().log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# Register all commands
cli.add_command(fill.fill_command)
cli.add_command(inspect.inspect_command)
cli.add_command(duplicates.check_duplicate_command)


def main():
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
