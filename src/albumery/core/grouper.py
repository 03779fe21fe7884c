# ABOUTME: Duplicate grouper: clusters resolved records by normalized artist+title and year.
# ABOUTME: Low-confidence or unresolved records are diverted to the review queue.

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from albumery.core.config import DEFAULT_CONFIG, EngineConfig
from albumery.core.decisions import DuplicateGroup, ReviewItem, ReviewReason
from albumery.metadata.normalizer import comparison_key
from albumery.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)


@dataclass
class GroupingResult:
    groups: list[DuplicateGroup] = field(default_factory=list)
    rejected: list[ReviewItem] = field(default_factory=list)

    @property
    def duplicate_groups(self) -> list[DuplicateGroup]:
        """Groups with more than one member."""
        return [g for g in self.groups if len(g) > 1]


def _member_order(record: MetadataRecord) -> str:
    return record.directory or ""


def _low_confidence_item(record: MetadataRecord, threshold: float) -> ReviewItem:
    if record.is_resolved:
        detail = f"confidence {record.confidence:.2f} below grouping threshold {threshold:.2f}"
    else:
        detail = "metadata could not be resolved"
    return ReviewItem(
        path=record.directory or "",
        reason=ReviewReason.LOW_CONFIDENCE,
        detail=detail,
        context=record.describe(),
    )


def _cluster_by_year(
    records: list[MetadataRecord], year_skew: int
) -> list[tuple[int | None, list[MetadataRecord]]]:
    """Split one artist+title key into year clusters.

    Each cluster spans at most `year_skew` years from its earliest member.
    Undated records join the only cluster when there is exactly one;
    otherwise they share a bucket of their own.
    """
    dated = sorted(
        (r for r in records if r.year is not None), key=lambda r: (r.year, _member_order(r))
    )
    undated = sorted((r for r in records if r.year is None), key=_member_order)

    clusters: list[tuple[int | None, list[MetadataRecord]]] = []
    for record in dated:
        if clusters and record.year - clusters[-1][0] <= year_skew:  # type: ignore[operator]
            clusters[-1][1].append(record)
        else:
            clusters.append((record.year, [record]))

    if undated:
        if len(clusters) == 1:
            clusters[0][1].extend(undated)
        else:
            clusters.append((None, undated))
    return clusters


def group(records: Iterable[MetadataRecord], config: EngineConfig = DEFAULT_CONFIG) -> GroupingResult:
    """Group records that describe the same release.

    Only RESOLVED records at or above the effective grouping threshold take
    part. Output groups and rejections are sorted deterministically.
    """
    threshold = config.effective_grouping_threshold
    result = GroupingResult()
    by_key: dict[tuple[str, str], list[MetadataRecord]] = defaultdict(list)

    for record in records:
        if not record.is_resolved or record.confidence < threshold:
            result.rejected.append(_low_confidence_item(record, threshold))
            continue
        key = (comparison_key(record.artist), comparison_key(record.title))
        by_key[key].append(record)

    for (artist_key, title_key), members in by_key.items():
        for year, cluster in _cluster_by_year(members, config.year_skew):
            result.groups.append(
                DuplicateGroup(
                    key=(artist_key, title_key, year),
                    members=tuple(sorted(cluster, key=_member_order)),
                )
            )

    result.groups.sort(key=lambda g: (g.key[0], g.key[1], g.key[2] if g.key[2] is not None else -1))
    result.rejected.sort(key=lambda item: item.path)
    logger.debug(
        "Grouped into %d groups (%d duplicates), %d rejected",
        len(result.groups),
        len(result.duplicate_groups),
        len(result.rejected),
    )
    return result
