# ABOUTME: MetadataRecord is the arbitrated, per-directory result of merging candidates.
# ABOUTME: Records are immutable; a rescan produces a new record instead of editing one.

from dataclasses import dataclass, field
from enum import Enum

from albumery.metadata.candidate import MetadataCandidate

ALBUM_FIELDS: tuple[str, ...] = ("artist", "title", "year", "catalog_number", "label")


class RecordStatus(str, Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class MetadataRecord:
    """Canonical metadata for one album directory.

    `candidates` holds every contributing candidate in a stable order so two
    records built from the same candidate set compare equal.
    """

    directory: str | None
    status: RecordStatus
    confidence: float
    artist: str | None = None
    title: str | None = None
    year: int | None = None
    catalog_number: str | None = None
    label: str | None = None
    candidates: tuple[MetadataCandidate, ...] = field(default_factory=tuple)

    @property
    def is_resolved(self) -> bool:
        return self.status is RecordStatus.RESOLVED

    @property
    def display_name(self) -> str:
        """'Artist - Title (Year)' or the directory fallback."""
        if self.artist and self.title:
            year = f" ({self.year})" if self.year else ""
            return f"{self.artist} - {self.title}{year}"
        return self.title or self.directory or "<unknown>"

    def describe(self) -> dict[str, object]:
        return {
            "directory": self.directory,
            "status": self.status.value,
            "confidence": round(self.confidence, 4),
            "artist": self.artist,
            "title": self.title,
            "year": self.year,
            "catalog_number": self.catalog_number,
            "label": self.label,
            "candidates": [c.describe() for c in self.candidates],
        }
