# ABOUTME: Parsing functions for Discogs database search responses.
# ABOUTME: Turns raw result dicts into unscored DiscogsMatch instances.

import re
from typing import Any

from albumery.metadata.normalizer import clean_field, parse_year
from albumery.metadata.provider import DiscogsMatch

# Discogs disambiguates artists as "Burial (2)" and marks name variations with "*".
_ARTIST_SUFFIX_RE = re.compile(r"\s*(?:\(\d+\)|\*)\s*$")


def split_release_title(value: str | None) -> tuple[str | None, str | None]:
    """Split a search-result title of the form 'Artist - Title'."""
    if not value:
        return None, None
    artist, sep, title = value.partition(" - ")
    if not sep:
        return None, clean_field(value)
    return clean_field(_ARTIST_SUFFIX_RE.sub("", artist)), clean_field(title)


def _first(values: Any) -> str | None:
    if isinstance(values, list):
        for value in values:
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None
    if isinstance(values, str) and values.strip():
        return values.strip()
    return None


def parse_search_result(data: dict[str, Any]) -> DiscogsMatch | None:
    """Parse one entry of the `results` array; None when it has no id."""
    release_id = data.get("id")
    if not isinstance(release_id, int):
        return None

    artist, title = split_release_title(data.get("title"))
    catalog = data.get("catno")
    if isinstance(catalog, str) and catalog.strip().lower() in {"", "none", "n/a"}:
        catalog = None

    return DiscogsMatch(
        release_id=release_id,
        artist=artist,
        title=title,
        year=parse_year(data.get("year")),
        catalog_number=catalog.strip() if isinstance(catalog, str) else None,
        label=_first(data.get("label")),
        score=0.0,
    )


def parse_search_results(data: dict[str, Any]) -> list[DiscogsMatch]:
    """Parse a `/database/search` response, skipping malformed entries."""
    results = data.get("results", [])
    if not isinstance(results, list):
        return []
    parsed = []
    for entry in results:
        if isinstance(entry, dict):
            match = parse_search_result(entry)
            if match is not None:
                parsed.append(match)
    return parsed
