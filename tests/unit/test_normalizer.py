# ABOUTME: Unit tests for the field normalizer used by extractors and the grouper.
# ABOUTME: Covers contamination stripping, artist canonicalization, catalog and year parsing.

import pytest

from albumery.metadata.normalizer import (
    clean_field,
    collapse_whitespace,
    comparison_key,
    is_valid_artist,
    label_from_catalog,
    looks_like_catalog,
    normalize_artist,
    parse_year,
    strip_contamination,
)


class TestCleanField:
    """Tests for clean_field()."""

    def test_underscores_become_spaces(self) -> None:
        """Underscore-separated names read as words."""
        assert clean_field("Boards_of_Canada") == "Boards of Canada"

    def test_splits_camel_case_runs(self) -> None:
        """A spaceless CamelCase run is split into words."""
        assert clean_field("TheDarkSideOfTheMoon") == "The Dark Side Of The Moon"

    def test_leaves_single_boundary_names_alone(self) -> None:
        """Names like McCartney are not split."""
        assert clean_field("McCartney") == "McCartney"

    def test_blank_becomes_none(self) -> None:
        assert clean_field("   ") is None
        assert clean_field(None) is None

    def test_collapse_whitespace(self) -> None:
        assert collapse_whitespace("  a \t  b\n") == "a b"


class TestStripContamination:
    """Tests for strip_contamination()."""

    def test_removes_format_tag_and_uploader(self) -> None:
        """Format brackets and a trailing uploader credit are dropped."""
        name = "Artist - Title (2020) [FLAC] By SomeUploader"
        assert strip_contamination(name) == "Artist - Title (2020)"

    def test_removes_compound_format_tag(self) -> None:
        assert strip_contamination("Artist - Title [WEB FLAC 24-96]") == "Artist - Title"

    def test_keeps_year_parenthetical(self) -> None:
        """A four-digit year in parentheses is not format noise."""
        assert strip_contamination("Artist - Title (1999)") == "Artist - Title (1999)"

    def test_keeps_label_bracket(self) -> None:
        assert strip_contamination("Artist - Title [Warp]") == "Artist - Title [Warp]"


class TestNormalizeArtist:
    """Tests for normalize_artist()."""

    @pytest.mark.parametrize("raw", ["VA", "V.A.", "various artists", "Various"])
    def test_various_artists_spellings_fold(self, raw: str) -> None:
        assert normalize_artist(raw) == "Various Artists"

    def test_strips_track_prefix(self) -> None:
        assert normalize_artist("01 - Autechre") == "Autechre"

    def test_strips_alias(self) -> None:
        assert normalize_artist("Aphex Twin aka AFX") == "Aphex Twin"

    def test_unknown_artist_is_none(self) -> None:
        assert normalize_artist("Unknown Artist") is None


class TestIsValidArtist:
    """Tests for is_valid_artist()."""

    @pytest.mark.parametrize("value", ["1999", "03", "7", "", None, "warp 123"])
    def test_rejects_non_artists(self, value: str | None) -> None:
        assert is_valid_artist(value) is False

    def test_accepts_real_name(self) -> None:
        assert is_valid_artist("Autechre") is True


class TestCatalogs:
    """Tests for catalog number detection and label guessing."""

    @pytest.mark.parametrize("token", ["WARP123", "CAT-001", "KOMPAKT 345", "hdbcd002"])
    def test_catalog_shapes(self, token: str) -> None:
        assert looks_like_catalog(token) is True

    @pytest.mark.parametrize("token", ["Warp", "2020", "", None, "A Very Long Title 1"])
    def test_non_catalogs(self, token: str | None) -> None:
        assert looks_like_catalog(token) is False

    def test_label_from_catalog_prefix(self) -> None:
        assert label_from_catalog("WARP123") == "WARP"

    def test_single_letter_prefix_is_not_a_label(self) -> None:
        assert label_from_catalog("X12") is None


class TestParseYear:
    """Tests for parse_year()."""

    def test_date_prefix(self) -> None:
        assert parse_year("2020-05-01") == 2020

    def test_int_input(self) -> None:
        assert parse_year(1999) == 1999

    @pytest.mark.parametrize("value", ["1850", "abc", None, "21st century"])
    def test_implausible_or_missing(self, value: str | None) -> None:
        assert parse_year(value) is None


class TestComparisonKey:
    """Tests for comparison_key()."""

    def test_folds_case_diacritics_and_punctuation(self) -> None:
        assert comparison_key("Sigur Rós") == "sigurros"
        assert comparison_key("SIGUR-RÓS!") == "sigurros"
        assert comparison_key("sigur_ros") == "sigurros"

    def test_empty(self) -> None:
        assert comparison_key(None) == ""
