# ABOUTME: Rich table builders shared by the CLI commands.
# ABOUTME: Renders candidates, records, decisions, ledger entries and review items.

from rich.table import Table

from albumery.core.decisions import DecisionState, Rationale, ResolutionDecision, ReviewItem
from albumery.db.mapping import LedgerEntry, ReviewEntry
from albumery.metadata.candidate import MetadataCandidate
from albumery.metadata.types import MetadataRecord

_NONE = "[dim]—[/dim]"

_STATE_STYLES = {
    DecisionState.PLANNED: "cyan",
    DecisionState.VERIFIED: "blue",
    DecisionState.EXECUTED: "green",
    DecisionState.REVERTED: "magenta",
    DecisionState.NEEDS_REVIEW: "yellow",
}


def _text(value: object) -> str:
    return _NONE if value in (None, "") else str(value)


def _state(state: DecisionState) -> str:
    return f"[{_STATE_STYLES[state]}]{state.value}[/{_STATE_STYLES[state]}]"


def candidates_table(candidates: list[MetadataCandidate], title: str = "Candidates") -> Table:
    table = Table(title=title)
    table.add_column("#", style="bold", width=3)
    table.add_column("Source")
    table.add_column("Artist")
    table.add_column("Title")
    table.add_column("Year")
    table.add_column("Catalog")
    table.add_column("Label")
    table.add_column("Confidence", justify="right")

    for i, candidate in enumerate(candidates, start=1):
        table.add_row(
            str(i),
            candidate.source.value,
            _text(candidate.artist),
            _text(candidate.title),
            _text(candidate.year),
            _text(candidate.catalog_number),
            _text(candidate.label),
            f"{candidate.confidence:.0%}",
        )
    return table


def record_table(record: MetadataRecord) -> Table:
    table = Table(title=record.directory or "Record", show_header=False, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    status_style = "green" if record.is_resolved else "red"
    table.add_row("Status", f"[{status_style}]{record.status.value}[/{status_style}]")
    table.add_row("Confidence", f"{record.confidence:.0%}")
    table.add_row("Artist", _text(record.artist))
    table.add_row("Title", _text(record.title))
    table.add_row("Year", _text(record.year))
    table.add_row("Catalog", _text(record.catalog_number))
    table.add_row("Label", _text(record.label))
    return table


def decisions_table(decisions: list[ResolutionDecision]) -> Table:
    table = Table(title="Decisions")
    table.add_column("ID", style="dim", width=5)
    table.add_column("Album", style="bold")
    table.add_column("Rationale")
    table.add_column("State")
    table.add_column("Keep")
    table.add_column("Delete")

    for decision in decisions:
        rationale = decision.rationale.value
        if decision.rationale in (Rationale.TIE_REQUIRES_REVIEW, Rationale.DURATION_MISMATCH):
            rationale = f"[yellow]{rationale}[/yellow]"
        table.add_row(
            _text(decision.decision_id),
            decision.group.display_name,
            rationale,
            _state(decision.state),
            _text(decision.keep),
            "\n".join(decision.delete_candidates) or _NONE,
        )
    return table


def entries_table(entries: list[LedgerEntry]) -> Table:
    table = Table(title="Ledger")
    table.add_column("ID", style="dim", width=5)
    table.add_column("Run", style="dim", width=4)
    table.add_column("Album", style="bold")
    table.add_column("Rationale")
    table.add_column("State")
    table.add_column("Keep")
    table.add_column("Deleted")
    table.add_column("Updated", style="dim")

    for entry in entries:
        table.add_row(
            str(entry.id),
            str(entry.run_id),
            _text(entry.display_name),
            entry.rationale.value,
            _state(entry.state),
            _text(entry.keep),
            "\n".join(entry.delete_candidates) or _NONE,
            entry.updated_at,
        )
    return table


def review_table(items: list[ReviewItem] | list[ReviewEntry], title: str = "Needs review") -> Table:
    table = Table(title=title)
    table.add_column("Path", style="bold")
    table.add_column("Reason", style="yellow")
    table.add_column("Detail")

    for item in items:
        table.add_row(item.path, item.reason.value, _text(item.detail))
    return table
