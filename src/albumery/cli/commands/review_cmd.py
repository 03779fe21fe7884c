# ABOUTME: The `albumery review` command for listing the manual review queue.
# ABOUTME: Shows unresolved names, quality ties, rejected verifications and executor failures.

from pathlib import Path

import click
from rich.console import Console

from albumery.cli.options import db_option
from albumery.cli.tables import review_table
from albumery.core.decisions import ReviewReason
from albumery.db.connection import DEFAULT_DB_PATH, open_ledger
from albumery.db.ledger import RunLedger

console = Console()


@click.command("review")
@db_option
@click.option(
    "--reason",
    type=click.Choice([r.value for r in ReviewReason]),
    default=None,
    help="Only items queued for this reason.",
)
def review(db_path: Path | None, reason: str | None) -> None:
    """Show everything waiting for a human decision."""
    conn = open_ledger(db_path or DEFAULT_DB_PATH)
    try:
        items = RunLedger(conn).review_queue()
    finally:
        conn.close()

    if reason:
        items = [i for i in items if i.reason.value == reason]
    if not items:
        console.print("[green]Nothing to review.[/green]")
        return

    console.print(review_table(items))
    console.print(f"\n{len(items)} item(s) need review")
