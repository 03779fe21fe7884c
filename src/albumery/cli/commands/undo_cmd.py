# ABOUTME: The `albumery undo` command for reverting an executed decision.
# ABOUTME: Restores retained content in reverse order, or refuses when it can no longer be proven intact.

from pathlib import Path

import click
from rich.console import Console

from albumery.cli.options import db_option
from albumery.core.filesystem import FilesystemExecutor
from albumery.db.connection import DEFAULT_DB_PATH, open_ledger
from albumery.db.ledger import LedgerWriteError, RunLedger

console = Console()


@click.command("undo")
@click.argument("decision_id", type=int)
@db_option
def undo(decision_id: int, db_path: Path | None) -> None:
    """Revert executed decision DECISION_ID."""
    conn = open_ledger(db_path or DEFAULT_DB_PATH)
    try:
        result = RunLedger(conn).revert(decision_id, FilesystemExecutor())
    except LedgerWriteError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc
    finally:
        conn.close()

    if not result.ok:
        console.print(f"[red]{result.status.value}:[/red] {result.message}")
        for path in result.restored:
            console.print(f"  restored {path}")
        raise SystemExit(1)

    console.print(f"[green]Reverted decision {decision_id}[/green]")
    for path in result.restored:
        console.print(f"  restored {path}")
