# ABOUTME: Duplicate groups, resolution decisions and review items, plus the decision state machine.
# ABOUTME: A decision's fingerprint identifies it across runs for idempotence and resumption.

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from albumery.core.quality import QualityScore
from albumery.metadata.types import MetadataRecord


class InvalidTransitionError(Exception):
    """Raised when a decision is moved to a state its current state cannot reach."""


class Rationale(str, Enum):
    QUALITY_WIN = "quality_win"
    SOLE_MEMBER = "sole_member"
    TIE_REQUIRES_REVIEW = "tie_requires_review"
    DURATION_MISMATCH = "duration_mismatch"


class DecisionState(str, Enum):
    PLANNED = "planned"
    VERIFIED = "verified"
    EXECUTED = "executed"
    REVERTED = "reverted"
    NEEDS_REVIEW = "needs_review"


ALLOWED_TRANSITIONS: dict[DecisionState, frozenset[DecisionState]] = {
    DecisionState.PLANNED: frozenset({DecisionState.VERIFIED, DecisionState.NEEDS_REVIEW}),
    DecisionState.VERIFIED: frozenset({DecisionState.EXECUTED, DecisionState.NEEDS_REVIEW}),
    DecisionState.EXECUTED: frozenset({DecisionState.REVERTED}),
    DecisionState.REVERTED: frozenset(),
    DecisionState.NEEDS_REVIEW: frozenset(),
}


def check_transition(current: DecisionState, new: DecisionState) -> None:
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move decision from {current.value} to {new.value}"
        )


class ReviewReason(str, Enum):
    LOW_CONFIDENCE = "low_confidence"
    AMBIGUOUS_TIE = "ambiguous_tie"
    DURATION_MISMATCH = "duration_mismatch"
    VERIFICATION_REJECTED = "verification_rejected"
    EXECUTOR_FAILURE = "executor_failure"


@dataclass(frozen=True)
class ReviewItem:
    """Something a human has to look at. Unique per (path, reason) in the ledger."""

    path: str
    reason: ReviewReason
    detail: str = ""
    context: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class DuplicateGroup:
    """Records that describe the same release.

    `key` is (artist key, title key, earliest year of the cluster or None).
    Members are sorted by directory.
    """

    key: tuple[str, str, int | None]
    members: tuple[MetadataRecord, ...]

    @property
    def key_text(self) -> str:
        artist, title, year = self.key
        return f"{artist}|{title}|{year if year is not None else '-'}"

    @property
    def directories(self) -> list[str]:
        return [m.directory or "" for m in self.members]

    @property
    def display_name(self) -> str:
        return self.members[0].display_name if self.members else self.key_text

    def __len__(self) -> int:
        return len(self.members)


def decision_fingerprint(
    group_key: str, members: list[str], keep: str | None, rationale: Rationale
) -> str:
    payload = json.dumps(
        [group_key, sorted(members), keep, rationale.value], ensure_ascii=False
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class ResolutionDecision:
    """What to do with one duplicate group.

    `keep` and `delete_candidates` are directory paths. The state only moves
    along ALLOWED_TRANSITIONS; use `transition_to` rather than assigning.
    """

    group: DuplicateGroup
    keep: str | None
    delete_candidates: tuple[str, ...]
    rationale: Rationale
    state: DecisionState
    scores: dict[str, QualityScore] = field(default_factory=dict)
    decision_id: int | None = None

    @property
    def fingerprint(self) -> str:
        return decision_fingerprint(
            self.group.key_text, self.group.directories, self.keep, self.rationale
        )

    @property
    def is_destructive(self) -> bool:
        return bool(self.delete_candidates)

    def transition_to(self, new_state: DecisionState) -> None:
        check_transition(self.state, new_state)
        self.state = new_state

    def scores_json(self) -> dict[str, dict[str, object]]:
        return {path: s.describe() for path, s in sorted(self.scores.items())}
