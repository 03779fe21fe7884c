# ABOUTME: Path-name extraction strategies, one pure function per naming convention.
# ABOUTME: Each strategy either matches its grammar and returns one candidate, or returns None.

import logging
import re
import string
from collections.abc import Callable

from albumery.metadata.candidate import CandidateSource, MetadataCandidate, precedence_rank
from albumery.metadata.normalizer import (
    clean_field,
    collapse_whitespace,
    is_valid_artist,
    label_from_catalog,
    looks_like_catalog,
    normalize_artist,
    parse_year,
    strip_contamination,
)
from albumery.metadata.provider import TagSnapshot

logger = logging.getLogger(__name__)

# Strategy-intrinsic base confidences.
CATALOG_BRACKET_CONFIDENCE = 0.85
STANDARD_LABELED_CONFIDENCE = 0.80
SCENE_RELEASE_CONFIDENCE = 0.70
YEAR_PREFIXED_CONFIDENCE = 0.55
EMBEDDED_TAG_CONFIDENCE = 0.95

# Fixed penalties for fields a grammar can carry but the name did not supply.
MISSING_YEAR_PENALTY = 0.15
MISSING_CATALOG_PENALTY = 0.05
MISSING_LABEL_PENALTY = 0.05
MISSING_ARTIST_PENALTY = 0.15
PARENT_ARTIST_PENALTY = 0.10

Strategy = Callable[[str, str | None], MetadataCandidate | None]

# --- catalog-bracket: [CATALOG] Artist - Title (Year) ---

_CATALOG_BRACKET_RE = re.compile(
    r"^\[(?P<catalog>[^\]]+)\]\s*(?P<artist>.+?)\s+-\s+(?P<title>.+?)"
    r"(?:\s*\((?P<year>\d{4})\))?\s*$"
)

# --- standard-labeled: Artist - Title (Year) [Label] ---

_STANDARD_BRACKET_FIRST_RE = re.compile(
    r"^(?P<artist>.+?)\s+-\s+(?P<title>.+?)\s*\[(?P<bracket>[^\]]+)\]\s*"
    r"\((?P<year>\d{4})\)\s*$"
)
_STANDARD_RE = re.compile(
    r"^(?P<artist>.+?)\s+-\s+(?P<title>.+?)(?:\s*\((?P<year>\d{4})\))?"
    r"(?:\s*\[(?P<bracket>[^\]]+)\])?\s*$"
)
# "Kompakt 123 - Artist - Title": a label series number in front.
_LABEL_SERIES_RE = re.compile(r"^(?P<label>[A-Z][a-z]+)\s+(?P<number>\d{3})$")

# --- scene-release: artist-title[-catalog]-year-group ---

_SCENE_GROUP_RE = re.compile(r"^[A-Za-z0-9]{2,16}$")
_SCENE_SOURCE_TAGS = frozenset(
    {
        "web", "cd", "cdr", "cdm", "cds", "ep", "lp", "vinyl", "vls", "flac",
        "mp3", "320", "v0", "v2", "promo", "retail", "bootleg", "digital",
        "dvd", "sat", "fm", "line", "cable", "remastered", "reissue", "ltd",
        "limited", "edition", "deluxe",
    }
)
_SCENE_PAREN_TAG_RE = re.compile(
    r"_?\((?:" + "|".join(sorted(_SCENE_SOURCE_TAGS)) + r")\)", re.IGNORECASE
)

# --- year-prefixed: (Year) Title / [Year] Title / Year - Title ---

_YEAR_PREFIXED_RE = re.compile(
    r"^(?:\((?P<y1>\d{4})\)|\[(?P<y2>\d{4})\]|(?P<y3>\d{4})\s+-)\s*(?P<rest>.+)$"
)
_TRAILING_BRACKETS_RE = re.compile(r"(?:\s*\[[^\]]*\])+\s*$")
_GENERIC_PARENTS = frozenset(
    {"music", "albums", "unsorted", "incoming", "downloads", "lossless", "lossy", "mixed"}
)


def _confidence(base: float, *penalties: float) -> float:
    value = base - sum(penalties)
    return round(max(0.0, min(1.0, value)), 4)


def _tidy_title(title: str | None) -> str | None:
    value = clean_field(title)
    if value and value.islower():
        value = string.capwords(value)
    return value


def _tidy_artist(artist: str | None) -> str | None:
    value = normalize_artist(artist)
    if value and value.islower():
        value = string.capwords(value)
    if not is_valid_artist(value):
        return None
    return value


def _split_bracket(bracket: str | None) -> tuple[str | None, str | None]:
    """Classify bracket text as (label, catalog)."""
    if not bracket:
        return None, None
    content = collapse_whitespace(bracket)
    if " - " in content:
        label, _, catalog = content.partition(" - ")
        if looks_like_catalog(catalog):
            return clean_field(label), catalog.strip()
        return clean_field(content), None
    if looks_like_catalog(content):
        return None, content
    return clean_field(content), None


def catalog_bracket(name: str, parent: str | None = None) -> MetadataCandidate | None:
    """Parse `[CATALOG] Artist - Title (Year)`."""
    match = _CATALOG_BRACKET_RE.match(strip_contamination(name))
    if not match:
        return None

    catalog = match.group("catalog").strip()
    if not looks_like_catalog(catalog):
        return None
    artist = _tidy_artist(match.group("artist"))
    title = _tidy_title(match.group("title"))
    if artist is None or title is None:
        return None

    year = parse_year(match.group("year"))
    penalties = [] if year else [MISSING_YEAR_PENALTY]
    return MetadataCandidate(
        source=CandidateSource.CATALOG_BRACKET,
        confidence=_confidence(CATALOG_BRACKET_CONFIDENCE, *penalties),
        artist=artist,
        title=title,
        year=year,
        catalog_number=catalog,
        label=label_from_catalog(catalog),
    )


def standard_labeled(name: str, parent: str | None = None) -> MetadataCandidate | None:
    """Parse `Artist - Title (Year) [Label]` and its bracket-before-year variant."""
    cleaned = strip_contamination(name)
    if cleaned.startswith("[") or _YEAR_PREFIXED_RE.match(cleaned):
        return None

    match = _STANDARD_BRACKET_FIRST_RE.match(cleaned) or _STANDARD_RE.match(cleaned)
    if not match:
        return None

    raw_artist = match.group("artist").strip()
    raw_title = match.group("title")
    label, catalog = _split_bracket(match.group("bracket"))

    series = _LABEL_SERIES_RE.match(raw_artist)
    if series and " - " in raw_title:
        label = label or series.group("label")
        catalog = catalog or f"{series.group('label')}{series.group('number')}"
        raw_artist, _, raw_title = raw_title.partition(" - ")

    if label is None and catalog is not None:
        label = label_from_catalog(catalog)

    artist = _tidy_artist(raw_artist)
    title = _tidy_title(raw_title)
    if artist is None or title is None:
        return None

    year = parse_year(match.group("year"))
    penalties = []
    if year is None:
        penalties.append(MISSING_YEAR_PENALTY)
    if catalog is None:
        penalties.append(MISSING_CATALOG_PENALTY)
    if label is None:
        penalties.append(MISSING_LABEL_PENALTY)

    return MetadataCandidate(
        source=CandidateSource.STANDARD_LABELED,
        confidence=_confidence(STANDARD_LABELED_CONFIDENCE, *penalties),
        artist=artist,
        title=title,
        year=year,
        catalog_number=catalog,
        label=label,
    )


def _is_source_tag(token: str) -> bool:
    return token.strip("()").lower() in _SCENE_SOURCE_TAGS


def scene_release(name: str, parent: str | None = None) -> MetadataCandidate | None:
    """Parse the hyphen-delimited scene grammar `artist-title[-catalog]-year-group`."""
    name = name.strip()
    if not name or any(ch.isspace() for ch in name):
        return None

    segments = name.split("-")
    if len(segments) < 4 or any(not seg for seg in segments):
        return None

    group, year_token = segments[-1], segments[-2]
    if not _SCENE_GROUP_RE.match(group) or len(year_token) != 4:
        return None
    year = parse_year(year_token)
    if year is None:
        return None

    middle = [seg for seg in segments[2:-2] if not _is_source_tag(seg)]
    catalog = None
    if middle and looks_like_catalog(middle[-1]):
        catalog = middle.pop()

    raw_title = _SCENE_PAREN_TAG_RE.sub("", segments[1])
    title_parts = [raw_title, *middle]
    artist = _tidy_artist(segments[0])
    title = _tidy_title(" - ".join(clean_field(p) or "" for p in title_parts).strip(" -"))
    if artist is None or title is None:
        return None

    penalties = [] if catalog else [MISSING_CATALOG_PENALTY]
    return MetadataCandidate(
        source=CandidateSource.SCENE_RELEASE,
        confidence=_confidence(SCENE_RELEASE_CONFIDENCE, *penalties),
        artist=artist,
        title=title,
        year=year,
        catalog_number=catalog,
    )


def year_prefixed(name: str, parent: str | None = None) -> MetadataCandidate | None:
    """Parse `(Year) Title`, `(Year) Artist - Title` or `Year - Title`.

    When the name carries no artist, the parent path segment is used as the
    artist (at a penalty) unless it is a generic collection folder.
    """
    match = _YEAR_PREFIXED_RE.match(strip_contamination(name))
    if not match:
        return None

    year = parse_year(match.group("y1") or match.group("y2") or match.group("y3"))
    if year is None:
        return None

    rest = _TRAILING_BRACKETS_RE.sub("", match.group("rest"))
    penalties: list[float] = []
    artist = None
    title = rest
    if " - " in rest:
        head, _, tail = rest.partition(" - ")
        artist = _tidy_artist(head)
        if artist is not None:
            title = tail

    if artist is None and parent and parent.strip().lower() not in _GENERIC_PARENTS:
        artist = _tidy_artist(parent)
        if artist is not None:
            penalties.append(PARENT_ARTIST_PENALTY)
    if artist is None:
        penalties.append(MISSING_ARTIST_PENALTY)

    title = _tidy_title(title)
    if title is None:
        return None

    return MetadataCandidate(
        source=CandidateSource.YEAR_PREFIXED,
        confidence=_confidence(YEAR_PREFIXED_CONFIDENCE, *penalties),
        artist=artist,
        title=title,
        year=year,
    )


STRATEGIES: tuple[Strategy, ...] = (
    catalog_bracket,
    standard_labeled,
    scene_release,
    year_prefixed,
)


def _split_path(path_segment: str) -> tuple[str, str | None]:
    parts = [p for p in re.split(r"[\\/]+", path_segment.strip()) if p]
    if not parts:
        return "", None
    parent = parts[-2] if len(parts) >= 2 else None
    return parts[-1], parent


def extract(path_segment: str) -> list[MetadataCandidate]:
    """Run every strategy against the last segment of `path_segment`.

    The parent segment, when present, is offered to strategies that can use
    it. Returns candidates sorted by source precedence; an empty list means
    no grammar matched.
    """
    name, parent = _split_path(path_segment)
    if not name:
        return []

    candidates = [
        candidate
        for strategy in STRATEGIES
        if (candidate := strategy(name, parent)) is not None
    ]
    if not candidates:
        logger.debug("No naming grammar matched %r", path_segment)
    candidates.sort(key=lambda c: (precedence_rank(c.source), -c.confidence))
    return candidates


def candidate_from_tags(snapshot: TagSnapshot | None) -> MetadataCandidate | None:
    """Convert an embedded-tag snapshot into an EMBEDDED_TAG candidate.

    Confidence scales with how consistently the album's tracks agree on
    artist and album, then takes the usual missing-field penalties.
    """
    if snapshot is None:
        return None

    artist = normalize_artist(snapshot.artist)
    title = clean_field(snapshot.album)
    if artist is None and title is None:
        return None

    penalties = []
    if snapshot.year is None:
        penalties.append(MISSING_YEAR_PENALTY)
    if not snapshot.catalog_number:
        penalties.append(MISSING_CATALOG_PENALTY)
    if not snapshot.label:
        penalties.append(MISSING_LABEL_PENALTY)
    if artist is None:
        penalties.append(MISSING_ARTIST_PENALTY)

    agreement = max(0.0, min(1.0, snapshot.agreement))
    return MetadataCandidate(
        source=CandidateSource.EMBEDDED_TAG,
        confidence=_confidence(EMBEDDED_TAG_CONFIDENCE * agreement, *penalties),
        artist=artist,
        title=title,
        year=snapshot.year,
        catalog_number=clean_field(snapshot.catalog_number),
        label=clean_field(snapshot.label),
    )
