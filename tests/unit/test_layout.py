# ABOUTME: Unit tests for the destination layout of kept albums.
# ABOUTME: Tests folder naming, sanitizing, collision suffixes and placement detection.

from pathlib import Path

from albumery.core.layout import (
    album_folder_name,
    already_placed,
    destination_for,
    sanitize_component,
    unique_path,
)
from albumery.metadata.types import MetadataRecord, RecordStatus


def _record(**fields) -> MetadataRecord:
    defaults = {"artist": "Boards of Canada", "title": "Geogaddi", "year": 2002}
    defaults.update(fields)
    return MetadataRecord(directory="x", status=RecordStatus.RESOLVED, confidence=0.9, **defaults)


class TestNaming:
    """Tests for folder naming."""

    def test_full_name(self):
        assert album_folder_name(_record(catalog_number="WARP101")) == "Geogaddi (2002) [WARP101]"

    def test_without_year_or_catalog(self):
        assert album_folder_name(_record(year=None)) == "Geogaddi"

    def test_destination(self, tmp_path: Path):
        assert destination_for(_record(), tmp_path) == tmp_path / "Boards of Canada" / "Geogaddi (2002)"

    def test_unsafe_characters(self):
        assert sanitize_component('AC/DC: "Live"?') == "AC_DC_ _Live__"

    def test_trailing_dots_and_blank(self):
        assert sanitize_component("Title...") == "Title"
        assert sanitize_component("   ") == "_"


class TestCollisions:
    """Tests for unique_path() and already_placed()."""

    def test_free_path_unchanged(self, tmp_path: Path):
        assert unique_path(tmp_path / "a") == tmp_path / "a"

    def test_suffixes(self, tmp_path: Path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a (1)").mkdir()
        assert unique_path(tmp_path / "a") == tmp_path / "a (2)"

    def test_already_placed(self, tmp_path: Path):
        target = tmp_path / "Artist" / "Title (2020)"
        assert already_placed(target, target)
        assert already_placed(target.with_name("Title (2020) (3)"), target)
        assert not already_placed(tmp_path / "Title (2020)", target)
        assert not already_placed(target.with_name("Other (1)"), target)
