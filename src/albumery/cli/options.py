# ABOUTME: Shared Click options for albumery CLI commands.
# ABOUTME: Provides reusable decorators for --db and --config.

from pathlib import Path

import click

from albumery.db.connection import DEFAULT_DB_PATH

db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Path to the run ledger database (default: {DEFAULT_DB_PATH})",
)

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with engine settings.",
)
