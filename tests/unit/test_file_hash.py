# ABOUTME: Unit tests for file and directory digests.
# ABOUTME: Directory digests follow content and relative names, not location.

import hashlib
import shutil
from pathlib import Path

import pytest

from albumery.db.hashing import compute_file_hash, compute_path_digest


class TestComputeFileHash:
    """Tests for compute_file_hash()."""

    def test_matches_hashlib(self, tmp_path: Path):
        path = tmp_path / "a.bin"
        path.write_bytes(b"abc" * 50000)
        assert compute_file_hash(path) == hashlib.sha256(b"abc" * 50000).hexdigest()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            compute_file_hash(tmp_path / "missing")


class TestComputePathDigest:
    """Tests for compute_path_digest()."""

    def test_file_digest_is_file_hash(self, tmp_path: Path):
        path = tmp_path / "a.txt"
        path.write_text("x")
        assert compute_path_digest(path) == compute_file_hash(path)

    def test_directory_digest_survives_move(self, tmp_path: Path):
        album = tmp_path / "album"
        (album / "CD1").mkdir(parents=True)
        (album / "CD1" / "01.mp3").write_bytes(b"one")
        (album / "cover.jpg").write_bytes(b"img")
        before = compute_path_digest(album)
        moved = Path(shutil.move(str(album), str(tmp_path / "elsewhere")))
        assert compute_path_digest(moved) == before

    def test_directory_digest_sees_changes(self, tmp_path: Path):
        album = tmp_path / "album"
        album.mkdir()
        (album / "01.mp3").write_bytes(b"one")
        before = compute_path_digest(album)
        (album / "01.mp3").write_bytes(b"two")
        assert compute_path_digest(album) != before

    def test_renamed_file_changes_digest(self, tmp_path: Path):
        album = tmp_path / "album"
        album.mkdir()
        (album / "01.mp3").write_bytes(b"one")
        before = compute_path_digest(album)
        (album / "01.mp3").rename(album / "02.mp3")
        assert compute_path_digest(album) != before

    def test_missing_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            compute_path_digest(tmp_path / "missing")
