# ABOUTME: The `albumery history` command for querying past decisions in the run ledger.
# ABOUTME: Filters by state, rationale and run; --events shows one decision's event log.

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from albumery.cli.options import db_option
from albumery.cli.tables import entries_table
from albumery.core.decisions import DecisionState, Rationale
from albumery.db.connection import DEFAULT_DB_PATH, open_ledger
from albumery.db.ledger import LedgerFilter, RunLedger

console = Console()


def _events_table(ledger: RunLedger, decision_id: int) -> Table:
    table = Table(title=f"Decision {decision_id}")
    table.add_column("When", style="dim")
    table.add_column("From")
    table.add_column("To", style="bold")
    table.add_column("Stage")
    table.add_column("Note")
    for event in ledger.events(decision_id):
        table.add_row(
            event.created_at,
            event.from_state.value if event.from_state else "",
            event.to_state.value,
            event.stage or "",
            event.note or "",
        )
    for action in ledger.actions(decision_id):
        table.add_row(
            action.created_at,
            "",
            f"{action.kind} ({action.status})",
            str(action.source),
            action.error or str(action.retained or ""),
        )
    return table


@click.command("history")
@db_option
@click.option(
    "--state",
    "states",
    type=click.Choice([s.value for s in DecisionState]),
    multiple=True,
    help="Only decisions in this state (repeatable).",
)
@click.option(
    "--rationale",
    type=click.Choice([r.value for r in Rationale]),
    default=None,
    help="Only decisions with this rationale.",
)
@click.option("--run", "run_id", type=int, default=None, help="Only decisions from this run.")
@click.option("--limit", type=int, default=None, help="Show at most this many decisions.")
@click.option("--events", "event_id", type=int, default=None, help="Show one decision's events.")
def history(
    db_path: Path | None,
    states: tuple[str, ...],
    rationale: str | None,
    run_id: int | None,
    limit: int | None,
    event_id: int | None,
) -> None:
    """List decisions recorded in the run ledger."""
    conn = open_ledger(db_path or DEFAULT_DB_PATH)
    try:
        ledger = RunLedger(conn)
        if event_id is not None:
            if ledger.get(event_id) is None:
                console.print(f"[red]No decision with id {event_id}[/red]")
                raise SystemExit(1)
            console.print(_events_table(ledger, event_id))
            return

        entries = ledger.query(
            LedgerFilter(
                states=tuple(DecisionState(s) for s in states),
                rationale=Rationale(rationale) if rationale else None,
                run_id=run_id,
                limit=limit,
            )
        )
    finally:
        conn.close()

    if not entries:
        console.print("No decisions recorded.")
        return
    console.print(entries_table(entries))
    console.print(f"\n{len(entries)} decision(s)")
