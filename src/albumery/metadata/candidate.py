# ABOUTME: MetadataCandidate is one extractor's guess at an album's metadata plus a confidence.
# ABOUTME: Candidates are immutable and tagged with the source that produced them.

from dataclasses import dataclass
from enum import Enum


class CandidateSource(str, Enum):
    """Where a candidate came from. Declaration order is not precedence; see PRECEDENCE."""

    SCENE_RELEASE = "scene_release"
    CATALOG_BRACKET = "catalog_bracket"
    STANDARD_LABELED = "standard_labeled"
    YEAR_PREFIXED = "year_prefixed"
    EMBEDDED_TAG = "embedded_tag"
    DISCOGS_LOOKUP = "discogs_lookup"


# Tie-break order used by the arbiter, most trusted first.
PRECEDENCE: tuple[CandidateSource, ...] = (
    CandidateSource.EMBEDDED_TAG,
    CandidateSource.DISCOGS_LOOKUP,
    CandidateSource.CATALOG_BRACKET,
    CandidateSource.STANDARD_LABELED,
    CandidateSource.SCENE_RELEASE,
    CandidateSource.YEAR_PREFIXED,
)

_RANK = {source: index for index, source in enumerate(PRECEDENCE)}


def precedence_rank(source: CandidateSource) -> int:
    """Lower is more trusted."""
    return _RANK[source]


@dataclass(frozen=True)
class MetadataCandidate:
    """A candidate set of album fields produced by exactly one extractor invocation."""

    source: CandidateSource
    confidence: float
    artist: str | None = None
    title: str | None = None
    year: int | None = None
    catalog_number: str | None = None
    label: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"confidence must be between 0.0 and 1.0, got {self.confidence}"
            raise ValueError(msg)

    def value_of(self, field_name: str) -> str | int | None:
        """Read one of the album fields by name."""
        return getattr(self, field_name)

    def describe(self) -> dict[str, object]:
        """Plain-dict form for logs and ledger context."""
        return {
            "source": self.source.value,
            "confidence": round(self.confidence, 4),
            "artist": self.artist,
            "title": self.title,
            "year": self.year,
            "catalog_number": self.catalog_number,
            "label": self.label,
        }
