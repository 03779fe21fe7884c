# ABOUTME: The run ledger: durable, append-only record of runs, decisions, actions and reviews.
# ABOUTME: Also implements undo, which only proceeds when every retained action still checks out.

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from albumery.core.decisions import (
    DecisionState,
    Rationale,
    ResolutionDecision,
    ReviewItem,
    check_transition,
)
from albumery.core.executor import ActionKind, ExecutionReceipt, Executor, ExecutorError
from albumery.db.hashing import compute_path_digest
from albumery.db.mapping import (
    ActionRecord,
    EventRecord,
    LedgerEntry,
    ReviewEntry,
    decision_to_row,
    row_to_action,
    row_to_entry,
    row_to_event,
    row_to_review,
)

logger = logging.getLogger(__name__)

ACTION_DONE = "done"
ACTION_FAILED = "failed"
ACTION_UNDONE = "undone"

_NOW = "strftime('%Y-%m-%dT%H:%M:%f', 'now')"


class LedgerWriteError(Exception):
    """Raised when the ledger cannot record something. Runs must halt on it."""


class UndoStatus(str, Enum):
    REVERTED = "reverted"
    IRREVERSIBLE = "irreversible"
    NOT_EXECUTED = "not_executed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class UndoResult:
    decision_id: int
    status: UndoStatus
    message: str = ""
    restored: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is UndoStatus.REVERTED


@dataclass
class LedgerFilter:
    """Criteria for `RunLedger.query`; empty fields match everything."""

    states: tuple[DecisionState, ...] = ()
    rationale: Rationale | None = None
    run_id: int | None = None
    limit: int | None = None


class RunLedger:
    """Typed access to the ledger tables over one sqlite3 connection.

    Written from a single coordinating thread only.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def _writing(self, what: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as exc:
            raise LedgerWriteError(f"Could not {what}: {exc}") from exc

    # --- runs ---

    def start_run(self, root: Path, *, dry_run: bool = False) -> int:
        with self._writing("start run") as conn:
            cursor = conn.execute(
                "INSERT INTO runs (root, dry_run) VALUES (?, ?)", (str(root), int(dry_run))
            )
        return cursor.lastrowid  # type: ignore[return-value]

    def finish_run(self, run_id: int, status: str, summary: dict[str, Any] | None = None) -> None:
        with self._writing("finish run") as conn:
            conn.execute(
                f"UPDATE runs SET status = ?, summary = ?, finished_at = {_NOW} WHERE id = ?",
                (status, json.dumps(summary or {}), run_id),
            )

    # --- decisions ---

    def append(self, decision: ResolutionDecision, run_id: int) -> int:
        """Insert a new decision and its initial event; sets `decision.decision_id`."""
        row = decision_to_row(decision, run_id)
        columns = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)
        with self._writing(f"append decision {decision.fingerprint[:12]}") as conn:
            cursor = conn.execute(
                f"INSERT INTO decisions ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )
            decision_id = cursor.lastrowid
            conn.execute(
                "INSERT INTO decision_events (decision_id, run_id, from_state, to_state) "
                "VALUES (?, ?, NULL, ?)",
                (decision_id, run_id, decision.state.value),
            )
        decision.decision_id = decision_id
        return decision_id  # type: ignore[return-value]

    def transition(
        self,
        decision_id: int,
        new_state: DecisionState,
        *,
        run_id: int | None = None,
        stage: str | None = None,
        note: str | None = None,
    ) -> DecisionState:
        """Move a stored decision to `new_state` and log the event.

        Raises:
            KeyError: If the decision does not exist.
            InvalidTransitionError: If the stored state cannot reach `new_state`.
        """
        entry = self.get(decision_id)
        if entry is None:
            raise KeyError(f"No decision with id {decision_id}")
        check_transition(entry.state, new_state)
        with self._writing(f"transition decision {decision_id}") as conn:
            conn.execute(
                f"UPDATE decisions SET state = ?, updated_at = {_NOW} WHERE id = ?",
                (new_state.value, decision_id),
            )
            conn.execute(
                "INSERT INTO decision_events "
                "(decision_id, run_id, from_state, to_state, stage, note) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (decision_id, run_id, entry.state.value, new_state.value, stage, note),
            )
        logger.debug("Decision %d: %s -> %s", decision_id, entry.state.value, new_state.value)
        return new_state

    def note_event(
        self,
        decision_id: int,
        *,
        run_id: int | None = None,
        stage: str | None = None,
        note: str | None = None,
    ) -> None:
        """Log an event that leaves the state unchanged (e.g. cancelled at a stage)."""
        entry = self.get(decision_id)
        if entry is None:
            raise KeyError(f"No decision with id {decision_id}")
        with self._writing(f"note event on decision {decision_id}") as conn:
            conn.execute(
                "INSERT INTO decision_events "
                "(decision_id, run_id, from_state, to_state, stage, note) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (decision_id, run_id, entry.state.value, entry.state.value, stage, note),
            )

    def get(self, decision_id: int) -> LedgerEntry | None:
        cursor = self._conn.execute("SELECT * FROM decisions WHERE id = ?", (decision_id,))
        row = cursor.fetchone()
        return row_to_entry(row) if row else None

    def find_by_fingerprint(self, fingerprint: str) -> LedgerEntry | None:
        cursor = self._conn.execute(
            "SELECT * FROM decisions WHERE fingerprint = ?", (fingerprint,)
        )
        row = cursor.fetchone()
        return row_to_entry(row) if row else None

    def query(self, criteria: LedgerFilter | None = None) -> list[LedgerEntry]:
        """Decisions matching `criteria`, oldest first."""
        criteria = criteria or LedgerFilter()
        clauses: list[str] = []
        params: list[Any] = []
        if criteria.states:
            clauses.append(f"state IN ({', '.join('?' for _ in criteria.states)})")
            params.extend(s.value for s in criteria.states)
        if criteria.rationale is not None:
            clauses.append("rationale = ?")
            params.append(criteria.rationale.value)
        if criteria.run_id is not None:
            clauses.append("run_id = ?")
            params.append(criteria.run_id)

        sql = "SELECT * FROM decisions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"
        if criteria.limit is not None:
            sql += " LIMIT ?"
            params.append(criteria.limit)
        return [row_to_entry(row) for row in self._conn.execute(sql, params).fetchall()]

    def events(self, decision_id: int) -> list[EventRecord]:
        cursor = self._conn.execute(
            "SELECT * FROM decision_events WHERE decision_id = ? ORDER BY id", (decision_id,)
        )
        return [row_to_event(row) for row in cursor.fetchall()]

    # --- actions ---

    def record_action(
        self,
        decision_id: int,
        *,
        run_id: int | None,
        kind: ActionKind,
        source: Path,
        target: Path | None = None,
        receipt: ExecutionReceipt | None = None,
        error: str | None = None,
    ) -> int:
        """Store one executor call. A missing receipt means the call failed."""
        status = ACTION_DONE if receipt is not None else ACTION_FAILED
        with self._writing(f"record {kind.value} of {source}") as conn:
            cursor = conn.execute(
                "INSERT INTO actions (decision_id, run_id, kind, source_path, target_path, "
                "retained_path, digest, status, error) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    decision_id,
                    run_id,
                    kind.value,
                    str(source),
                    str(target) if target else None,
                    str(receipt.retained) if receipt and receipt.retained else None,
                    receipt.digest if receipt else None,
                    status,
                    error,
                ),
            )
        return cursor.lastrowid  # type: ignore[return-value]

    def actions(self, decision_id: int) -> list[ActionRecord]:
        cursor = self._conn.execute(
            "SELECT * FROM actions WHERE decision_id = ? ORDER BY id", (decision_id,)
        )
        return [row_to_action(row) for row in cursor.fetchall()]

    # --- review queue ---

    def add_review_item(self, item: ReviewItem, run_id: int | None = None) -> bool:
        """Queue `item` unless one with the same path and reason exists. Returns True if added."""
        with self._writing(f"queue review item for {item.path}") as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO review_items (run_id, path, reason, detail, context) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    run_id,
                    item.path,
                    item.reason.value,
                    item.detail,
                    json.dumps(item.context, default=str),
                ),
            )
        return cursor.rowcount > 0

    def review_queue(self) -> list[ReviewEntry]:
        cursor = self._conn.execute("SELECT * FROM review_items ORDER BY id")
        return [row_to_review(row) for row in cursor.fetchall()]

    def counts(self) -> dict[str, int]:
        """Row counts per table, handy for audits and tests."""
        tables = ("runs", "decisions", "decision_events", "actions", "review_items")
        return {
            table: self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in tables
        }

    # --- undo ---

    def _precheck(self, action: ActionRecord) -> str | None:
        """Why `action` cannot be undone, or None if it can."""
        if action.retained is None or action.digest is None:
            return f"{action.kind} of {action.source} kept no retained copy"
        if not action.retained.exists():
            return f"retained copy {action.retained} is gone"
        if action.source.exists():
            return f"original location {action.source} is occupied"
        try:
            digest = compute_path_digest(action.retained)
        except OSError as exc:
            return f"cannot read {action.retained}: {exc}"
        if digest != action.digest:
            return f"retained copy {action.retained} changed since it was recorded"
        return None

    def _restore_done(self, decision_id: int, executor: Executor) -> UndoResult:
        """Restore every DONE action of a decision, most recent first, marking each undone.

        Every action is checked before anything is touched; one failing check
        leaves everything in place and reports IRREVERSIBLE.
        """
        done = [a for a in self.actions(decision_id) if a.status == ACTION_DONE]
        for action in done:
            problem = self._precheck(action)
            if problem:
                logger.warning("Decision %d is irreversible: %s", decision_id, problem)
                return UndoResult(decision_id, UndoStatus.IRREVERSIBLE, problem)

        restored: list[str] = []
        for action in reversed(done):
            receipt = ExecutionReceipt(
                kind=ActionKind(action.kind),
                source=action.source,
                target=action.target,
                retained=action.retained,
                digest=action.digest or "",
            )
            try:
                executor.restore(receipt)
            except ExecutorError as exc:
                logger.error("Undo of decision %d stopped: %s", decision_id, exc)
                return UndoResult(decision_id, UndoStatus.FAILED, str(exc), restored)
            with self._writing(f"mark action {action.id} undone") as conn:
                conn.execute(
                    "UPDATE actions SET status = ? WHERE id = ?", (ACTION_UNDONE, action.id)
                )
            restored.append(str(action.source))
        return UndoResult(decision_id, UndoStatus.REVERTED, "reverted", restored)

    def revert(self, decision_id: int, executor: Executor) -> UndoResult:
        """Undo an EXECUTED decision, most recent action first."""
        entry = self.get(decision_id)
        if entry is None:
            return UndoResult(decision_id, UndoStatus.NOT_FOUND, f"No decision {decision_id}")
        if entry.state is not DecisionState.EXECUTED:
            return UndoResult(
                decision_id,
                UndoStatus.NOT_EXECUTED,
                f"Decision {decision_id} is {entry.state.value}, not executed",
            )

        result = self._restore_done(decision_id, executor)
        if result.ok:
            self.transition(decision_id, DecisionState.REVERTED, note="undo")
        return result

    def roll_back(self, decision_id: int, executor: Executor) -> UndoResult:
        """Put back whatever a decision moved or deleted before it was rejected.

        Used for decisions that never reached EXECUTED, so their state is
        left alone; the caller moves them to review.
        """
        if self.get(decision_id) is None:
            return UndoResult(decision_id, UndoStatus.NOT_FOUND, f"No decision {decision_id}")
        result = self._restore_done(decision_id, executor)
        if result.restored:
            logger.info(
                "Rolled back %d action(s) of decision %d", len(result.restored), decision_id
            )
        return result
