# ABOUTME: CLI package for albumery, built on Click.
# ABOUTME: Defines the root command group, logging setup, and registers subcommands.

import logging

import click
from rich.logging import RichHandler

from albumery.cli.commands import history_cmd, inspect_cmd, resolve_cmd, review_cmd, undo_cmd


@click.group()
@click.version_option(package_name="albumery")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """albumery - rebuild album metadata from folder names and resolve duplicates."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


cli.add_command(inspect_cmd.inspect)
cli.add_command(resolve_cmd.resolve)
cli.add_command(history_cmd.history)
cli.add_command(review_cmd.review)
cli.add_command(undo_cmd.undo)
