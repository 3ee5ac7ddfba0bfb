"""CLI entry point for moodsync."""

import sys

import click
from rich.console import Console

from cli.commands import conflicts, history, sync
from cli.config import load_config_model
from cli.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """moodsync - offline-first emotion history with conflict-aware sync."""
    try:
        config = load_config_model()
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)
    level = "DEBUG" if verbose else config.logging.level
    setup_logging(json_mode=config.logging.json_mode, level=level)


cli.add_command(history)
cli.add_command(sync)
cli.add_command(conflicts)


if __name__ == "__main__":
    cli()
