# ABOUTME: Confidence arbiter: merges every candidate for a directory into one MetadataRecord.
# ABOUTME: Per-field winner selection, weighted overall confidence, and an agreement bonus.

import logging
from collections.abc import Iterable

from albumery.core.config import DEFAULT_CONFIG, EngineConfig
from albumery.metadata.candidate import MetadataCandidate, precedence_rank
from albumery.metadata.normalizer import collapse_whitespace
from albumery.metadata.types import ALBUM_FIELDS, MetadataRecord, RecordStatus

logger = logging.getLogger(__name__)

# Weights must sum to 1.0; only fields that were actually selected take part.
FIELD_WEIGHTS: dict[str, float] = {
    "artist": 0.4,
    "title": 0.3,
    "year": 0.1,
    "catalog_number": 0.1,
    "label": 0.1,
}

AGREEMENT_BONUS = 0.1


def _audit_order(candidate: MetadataCandidate) -> tuple:
    return (
        precedence_rank(candidate.source),
        -candidate.confidence,
        tuple(str(candidate.value_of(name)) for name in ALBUM_FIELDS),
    )


def _agreement_text(value: str | None) -> str:
    return collapse_whitespace(value or "").casefold()


def _select(
    candidates: list[MetadataCandidate], field_name: str
) -> MetadataCandidate | None:
    """Highest confidence wins, then source precedence, then the value itself."""
    holders = [c for c in candidates if c.value_of(field_name) is not None]
    if not holders:
        return None
    return min(
        holders,
        key=lambda c: (-c.confidence, precedence_rank(c.source), str(c.value_of(field_name))),
    )


def _agreeing_sources(
    candidates: list[MetadataCandidate], artist: str, title: str
) -> int:
    wanted = (_agreement_text(artist), _agreement_text(title))
    sources = {
        c.source
        for c in candidates
        if (_agreement_text(c.artist), _agreement_text(c.title)) == wanted
    }
    return len(sources)


def arbitrate(
    candidates: Iterable[MetadataCandidate],
    config: EngineConfig = DEFAULT_CONFIG,
    directory: str | None = None,
) -> MetadataRecord:
    """Merge candidates into one record; fails closed.

    The record is UNRESOLVED when no candidate reaches `confidence_floor` or
    when no artist or title survives selection. The result does not depend
    on the order of `candidates`.
    """
    ordered = sorted(candidates, key=_audit_order)
    audit = tuple(ordered)
    eligible = [c for c in ordered if c.confidence >= config.confidence_floor]

    if not eligible:
        best = max((c.confidence for c in ordered), default=0.0)
        logger.debug("No candidate above floor %.2f for %s", config.confidence_floor, directory)
        return MetadataRecord(
            directory=directory,
            status=RecordStatus.UNRESOLVED,
            confidence=round(best, 4),
            candidates=audit,
        )

    selected = {name: _select(eligible, name) for name in ALBUM_FIELDS}
    values = {
        name: (winner.value_of(name) if winner is not None else None)
        for name, winner in selected.items()
    }

    weight_total = sum(FIELD_WEIGHTS[name] for name, w in selected.items() if w is not None)
    weighted = sum(
        FIELD_WEIGHTS[name] * winner.confidence
        for name, winner in selected.items()
        if winner is not None
    )
    confidence = weighted / weight_total if weight_total else 0.0

    artist, title = values["artist"], values["title"]
    if artist is None or title is None:
        logger.debug("No artist/title selected for %s", directory)
        return MetadataRecord(
            directory=directory,
            status=RecordStatus.UNRESOLVED,
            confidence=round(confidence, 4),
            title=title,
            artist=artist,
            year=values["year"],
            catalog_number=values["catalog_number"],
            label=values["label"],
            candidates=audit,
        )

    if _agreeing_sources(eligible, artist, title) >= 2:
        confidence += AGREEMENT_BONUS

    return MetadataRecord(
        directory=directory,
        status=RecordStatus.RESOLVED,
        confidence=round(min(1.0, confidence), 4),
        artist=artist,
        title=title,
        year=values["year"],
        catalog_number=values["catalog_number"],
        label=values["label"],
        candidates=audit,
    )
