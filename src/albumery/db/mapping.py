# ABOUTME: Converts between engine objects and ledger rows.
# ABOUTME: JSON-serializes scores, path lists and review context.

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from albumery.core.decisions import DecisionState, Rationale, ResolutionDecision, ReviewReason
from albumery.metadata.types import MetadataRecord, RecordStatus


@dataclass
class LedgerEntry:
    """A decision as stored in the ledger."""

    id: int
    run_id: int
    fingerprint: str
    group_key: str
    display_name: str | None
    keep: str | None
    delete_candidates: list[str]
    rationale: Rationale
    state: DecisionState
    scores: dict[str, Any]
    created_at: str
    updated_at: str
    keep_metadata: dict[str, Any] = field(default_factory=dict)

    def keep_record(self) -> MetadataRecord | None:
        """Rebuild the keeper's metadata, used to place it in the destination layout."""
        if not self.keep or not self.keep_metadata:
            return None
        meta = self.keep_metadata
        return MetadataRecord(
            directory=self.keep,
            status=RecordStatus.RESOLVED,
            confidence=float(meta.get("confidence", 0.0)),
            artist=meta.get("artist"),
            title=meta.get("title"),
            year=meta.get("year"),
            catalog_number=meta.get("catalog_number"),
            label=meta.get("label"),
        )


@dataclass
class ActionRecord:
    """One executor call made on behalf of a decision."""

    id: int
    decision_id: int
    run_id: int | None
    kind: str
    source: Path
    target: Path | None
    retained: Path | None
    digest: str | None
    status: str
    error: str | None
    created_at: str


@dataclass
class EventRecord:
    id: int
    decision_id: int
    run_id: int | None
    from_state: DecisionState | None
    to_state: DecisionState
    stage: str | None
    note: str | None
    created_at: str


@dataclass
class ReviewEntry:
    id: int
    run_id: int | None
    path: str
    reason: ReviewReason
    detail: str | None
    context: dict[str, Any]
    created_at: str


def _keep_metadata(decision: ResolutionDecision) -> dict[str, Any] | None:
    for member in decision.group.members:
        if member.directory == decision.keep:
            meta = member.describe()
            meta.pop("candidates", None)
            return meta
    return None


def decision_to_row(decision: ResolutionDecision, run_id: int) -> dict[str, Any]:
    keep_metadata = _keep_metadata(decision)
    return {
        "run_id": run_id,
        "fingerprint": decision.fingerprint,
        "group_key": decision.group.key_text,
        "display_name": decision.group.display_name,
        "keep_path": decision.keep,
        "keep_metadata": json.dumps(keep_metadata) if keep_metadata else None,
        "delete_paths": json.dumps(list(decision.delete_candidates)),
        "rationale": decision.rationale.value,
        "state": decision.state.value,
        "scores": json.dumps(decision.scores_json()),
    }


def row_to_entry(row: Any) -> LedgerEntry:
    return LedgerEntry(
        id=row["id"],
        run_id=row["run_id"],
        fingerprint=row["fingerprint"],
        group_key=row["group_key"],
        display_name=row["display_name"],
        keep=row["keep_path"],
        delete_candidates=json.loads(row["delete_paths"]),
        rationale=Rationale(row["rationale"]),
        state=DecisionState(row["state"]),
        scores=json.loads(row["scores"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        keep_metadata=json.loads(row["keep_metadata"]) if row["keep_metadata"] else {},
    )


def row_to_action(row: Any) -> ActionRecord:
    return ActionRecord(
        id=row["id"],
        decision_id=row["decision_id"],
        run_id=row["run_id"],
        kind=row["kind"],
        source=Path(row["source_path"]),
        target=Path(row["target_path"]) if row["target_path"] else None,
        retained=Path(row["retained_path"]) if row["retained_path"] else None,
        digest=row["digest"],
        status=row["status"],
        error=row["error"],
        created_at=row["created_at"],
    )


def row_to_event(row: Any) -> EventRecord:
    return EventRecord(
        id=row["id"],
        decision_id=row["decision_id"],
        run_id=row["run_id"],
        from_state=DecisionState(row["from_state"]) if row["from_state"] else None,
        to_state=DecisionState(row["to_state"]),
        stage=row["stage"],
        note=row["note"],
        created_at=row["created_at"],
    )


def row_to_review(row: Any) -> ReviewEntry:
    return ReviewEntry(
        id=row["id"],
        run_id=row["run_id"],
        path=row["path"],
        reason=ReviewReason(row["reason"]),
        detail=row["detail"],
        context=json.loads(row["context"]) if row["context"] else {},
        created_at=row["created_at"],
    )
