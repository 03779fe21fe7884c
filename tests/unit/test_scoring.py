# ABOUTME: Unit tests for Discogs match scoring.
# ABOUTME: Tests string similarity folding and the weighted artist/title/year score.

import pytest

from albumery.metadata.provider import DiscogsMatch
from albumery.metadata.scoring import score_match, string_similarity


def _match(artist: str = "Burial", title: str = "Untrue", year: int | None = 2007) -> DiscogsMatch:
    return DiscogsMatch(
        release_id=1,
        artist=artist,
        title=title,
        year=year,
        catalog_number="HDBCD002",
        label="Hyperdub",
        score=0.0,
    )


class TestStringSimilarity:
    """Tests for string_similarity()."""

    def test_identical_after_folding(self) -> None:
        assert string_similarity("Sigur Rós", "sigur ros") == 1.0

    def test_one_side_empty(self) -> None:
        assert string_similarity("a", None) == 0.0

    def test_both_empty(self) -> None:
        assert string_similarity("", None) == 1.0


class TestScoreMatch:
    """Tests for score_match()."""

    def test_exact_match_with_year(self) -> None:
        assert score_match(_match(), "Burial", "Untrue", 2007) == pytest.approx(1.0)

    def test_no_query_year_rescales(self) -> None:
        assert score_match(_match(), "Burial", "Untrue") == pytest.approx(1.0)

    def test_year_one_off_half_credit(self) -> None:
        assert score_match(_match(), "Burial", "Untrue", 2008) == pytest.approx(0.95)

    def test_year_far_off_no_credit(self) -> None:
        assert score_match(_match(), "Burial", "Untrue", 2015) == pytest.approx(0.9)

    def test_wrong_artist_scores_low(self) -> None:
        mismatch = _match(artist="Zomby", title="Dedication")
        assert score_match(mismatch, "Burial", "Untrue", 2007) < 0.6
