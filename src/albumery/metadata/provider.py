# ABOUTME: Protocols for the external metadata collaborators: embedded tags and the Discogs oracle.
# ABOUTME: The engine only depends on these contracts; concrete readers live elsewhere.

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from albumery.metadata.candidate import CandidateSource, MetadataCandidate


class OracleTimeout(Exception):
    """Raised when a Discogs lookup does not answer within the configured timeout."""


@dataclass(frozen=True)
class TagSnapshot:
    """Album-level view of the embedded tags across one directory's tracks.

    `agreement` is the fraction of tagged tracks that share the most common
    artist/album pair.
    """

    artist: str | None = None
    album: str | None = None
    year: int | None = None
    label: str | None = None
    catalog_number: str | None = None
    track_count: int = 0
    agreement: float = 1.0


@dataclass(frozen=True)
class DiscogsMatch:
    """The best Discogs release for an artist/title query, with its match score."""

    release_id: int
    artist: str | None
    title: str | None
    year: int | None
    catalog_number: str | None
    label: str | None
    score: float

    def to_candidate(self) -> MetadataCandidate:
        # Discogs only fills in the fields path names rarely carry.
        return MetadataCandidate(
            source=CandidateSource.DISCOGS_LOOKUP,
            confidence=max(0.0, min(1.0, self.score)),
            year=self.year,
            catalog_number=self.catalog_number,
            label=self.label,
        )


@runtime_checkable
class TagReader(Protocol):
    """Reads embedded tags for every audio file in an album directory."""

    def read_tags(self, directory: Path) -> TagSnapshot | None: ...


@runtime_checkable
class DiscogsLookup(Protocol):
    """Confidence-boosting oracle for catalog number, label and year."""

    def lookup(self, artist: str, title: str) -> DiscogsMatch | None: ...
