# ABOUTME: Metadata package: path extraction, candidate arbitration, and the Discogs oracle.
# ABOUTME: Exports the candidate and record types used throughout albumery.

from albumery.metadata.arbiter import arbitrate
from albumery.metadata.candidate import CandidateSource, MetadataCandidate
from albumery.metadata.extractors import candidate_from_tags, extract
from albumery.metadata.provider import DiscogsLookup, DiscogsMatch, TagReader, TagSnapshot
from albumery.metadata.types import MetadataRecord, RecordStatus

__all__ = [
    "CandidateSource",
    "DiscogsLookup",
    "DiscogsMatch",
    "MetadataCandidate",
    "MetadataRecord",
    "RecordStatus",
    "TagReader",
    "TagSnapshot",
    "arbitrate",
    "candidate_from_tags",
    "extract",
]
