# ABOUTME: Similarity scoring of Discogs search results against the queried artist/title.
# ABOUTME: Weighted fuzzy comparison; the best score decides whether the oracle answers at all.

from difflib import SequenceMatcher

from albumery.metadata.normalizer import comparison_key
from albumery.metadata.provider import DiscogsMatch

# Match weights, must sum to 1.0
_WEIGHT_ARTIST = 0.5
_WEIGHT_TITLE = 0.4
_WEIGHT_YEAR = 0.1


def string_similarity(a: str | None, b: str | None) -> float:
    """Similarity of two strings after comparison-key folding."""
    left, right = comparison_key(a), comparison_key(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return SequenceMatcher(None, left, right).ratio()


def score_match(
    match: DiscogsMatch,
    artist: str,
    title: str,
    year: int | None = None,
) -> float:
    """Score a Discogs result against a query.

    The year term only counts when both sides have one; one year apart earns
    half credit (reissues and late-December releases).
    """
    score = _WEIGHT_ARTIST * string_similarity(artist, match.artist)
    score += _WEIGHT_TITLE * string_similarity(title, match.title)

    if year is not None and match.year is not None:
        diff = abs(year - match.year)
        if diff == 0:
            score += _WEIGHT_YEAR
        elif diff == 1:
            score += _WEIGHT_YEAR / 2
    elif year is None:
        # Nothing to contradict; scale the name terms up to the full range.
        score = score / (_WEIGHT_ARTIST + _WEIGHT_TITLE)

    return round(max(0.0, min(1.0, score)), 4)
