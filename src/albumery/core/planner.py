# ABOUTME: Resolution planner: decides keep/delete/review for one duplicate group.
# ABOUTME: Works only from quality scores and total durations; never touches the filesystem.

from collections.abc import Mapping

from albumery.core.decisions import DecisionState, DuplicateGroup, Rationale, ResolutionDecision
from albumery.core.quality import QualityScore

DEFAULT_DURATION_TOLERANCE = 0.25


def durations_diverge(durations: Mapping[str, float], tolerance: float) -> bool:
    """True when the shortest copy plays more than `tolerance` less than the longest.

    Copies with an unknown (zero) duration take no part in the comparison.
    """
    known = [d for d in durations.values() if d > 0]
    if len(known) < 2:
        return False
    longest = max(known)
    return (longest - min(known)) / longest > tolerance


def plan(
    group: DuplicateGroup,
    scores: Mapping[str, QualityScore],
    durations: Mapping[str, float] | None = None,
    duration_tolerance: float = DEFAULT_DURATION_TOLERANCE,
) -> ResolutionDecision:
    """Plan a decision for `group` from its members' scores.

    A single member is kept as is. Members whose total playing time differs
    beyond `duration_tolerance` are probably different releases sharing a
    name, so nothing is chosen. Otherwise a strict maximum keeps that copy
    and queues the rest for deletion; a tie at the top is never auto-resolved.

    Raises:
        KeyError: If a member directory has no score.
    """
    member_scores = {directory: scores[directory] for directory in group.directories}

    if len(member_scores) == 1:
        (only,) = member_scores
        return ResolutionDecision(
            group=group,
            keep=only,
            delete_candidates=(),
            rationale=Rationale.SOLE_MEMBER,
            state=DecisionState.PLANNED,
            scores=member_scores,
        )

    if durations is not None:
        member_durations = {d: durations.get(d, 0.0) for d in member_scores}
        if durations_diverge(member_durations, duration_tolerance):
            return ResolutionDecision(
                group=group,
                keep=None,
                delete_candidates=(),
                rationale=Rationale.DURATION_MISMATCH,
                state=DecisionState.NEEDS_REVIEW,
                scores=member_scores,
            )

    best = max(member_scores.values())
    winners = [d for d, s in member_scores.items() if s == best]
    if len(winners) > 1:
        return ResolutionDecision(
            group=group,
            keep=None,
            delete_candidates=(),
            rationale=Rationale.TIE_REQUIRES_REVIEW,
            state=DecisionState.NEEDS_REVIEW,
            scores=member_scores,
        )

    keep = winners[0]
    return ResolutionDecision(
        group=group,
        keep=keep,
        delete_candidates=tuple(sorted(d for d in member_scores if d != keep)),
        rationale=Rationale.QUALITY_WIN,
        state=DecisionState.PLANNED,
        scores=member_scores,
    )
