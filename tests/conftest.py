# ABOUTME: Shared pytest fixtures for albumery tests.
# ABOUTME: Builds real minimal FLAC/WAV/MP3 files, album trees, fake collaborators and a ledger.

import struct
import wave
from collections.abc import Callable
from pathlib import Path

import pytest

from albumery.core.config import EngineConfig
from albumery.core.executor import ActionKind, ExecutionReceipt, ExecutorError
from albumery.db.connection import open_ledger
from albumery.db.hashing import compute_path_digest
from albumery.db.ledger import RunLedger
from albumery.formats.audio import AudioAsset, AudioReadError
from albumery.metadata.provider import DiscogsMatch, OracleTimeout, TagSnapshot

# 128 kbps, 44.1 kHz, stereo MPEG-1 Layer III frame header without CRC.
_MP3_FRAME_HEADER = b"\xff\xfb\x90\x00"
_MP3_FRAME_LENGTH = 417


def _flac_bytes(sample_rate: int, bits: int, channels: int, total_samples: int) -> bytes:
    packed = (
        (sample_rate << 44)
        | ((channels - 1) << 41)
        | ((bits - 1) << 36)
        | total_samples
    )
    streaminfo = (
        struct.pack(">HH", 4096, 4096)
        + b"\x00\x00\x00"  # min frame size (unknown)
        + b"\x00\x00\x00"  # max frame size (unknown)
        + struct.pack(">Q", packed)
        + b"\x00" * 16  # md5
    )
    header = bytes([0x80]) + len(streaminfo).to_bytes(3, "big")
    return b"fLaC" + header + streaminfo


@pytest.fixture
def write_flac() -> Callable[..., Path]:
    """Write a FLAC file holding only a STREAMINFO block."""

    def _write(
        path: Path,
        sample_rate: int = 44100,
        bits: int = 16,
        channels: int = 2,
        seconds: int = 30,
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_flac_bytes(sample_rate, bits, channels, sample_rate * seconds))
        return path

    return _write


@pytest.fixture
def write_mp3() -> Callable[..., Path]:
    """Write a constant-bitrate 128 kbps MP3 made of silent frames.

    The default 1149 frames last about 30 seconds, the same as `write_flac`.
    """

    def _write(path: Path, frames: int = 1149) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        frame = _MP3_FRAME_HEADER + b"\x00" * (_MP3_FRAME_LENGTH - len(_MP3_FRAME_HEADER))
        path.write_bytes(frame * frames)
        return path

    return _write


@pytest.fixture
def write_wav() -> Callable[..., Path]:
    """Write a short silent PCM WAV file with the stdlib wave module."""

    def _write(path: Path, sample_rate: int = 44100, bits: int = 16, channels: int = 2) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with wave.open(str(path), "wb") as wav:
            wav.setnchannels(channels)
            wav.setsampwidth(bits // 8)
            wav.setframerate(sample_rate)
            wav.writeframes(b"\x00" * (bits // 8) * channels * 441)
        return path

    return _write


@pytest.fixture
def make_album(write_flac, write_mp3, write_wav) -> Callable[..., Path]:
    """Create an album directory of `tracks` audio files in the given format."""
    writers = {"flac": write_flac, "mp3": write_mp3, "wav": write_wav}

    def _make(directory: Path, kind: str = "flac", tracks: int = 3) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        for number in range(1, tracks + 1):
            writers[kind](directory / f"{number:02d} - Track {number}.{kind}")
        return directory

    return _make


@pytest.fixture
def collection(tmp_path: Path, make_album) -> Path:
    """A small collection with one duplicate pair and one unique album.

    Layout:
        collection/
            Artist - Title (2020) [Label]/     3 x FLAC + cover.jpg
            artist-title-2020-group/           3 x MP3 + playlist.m3u
            Other Band - Other Record (2011)/  2 x MP3
    """
    root = tmp_path / "collection"
    flac = make_album(root / "Artist - Title (2020) [Label]", "flac", 3)
    (flac / "cover.jpg").write_bytes(b"\xff\xd8fake jpeg")
    mp3 = make_album(root / "artist-title-2020-group", "mp3", 3)
    (mp3 / "playlist.m3u").write_text("01 - Track 1.mp3\n")
    make_album(root / "Other Band - Other Record (2011)", "mp3", 2)
    return root


def fake_asset(
    path: Path,
    *,
    lossless: bool = False,
    bitrate: int = 320,
    sample_rate: int = 44100,
    bits_per_sample: int = 16,
    channels: int = 2,
) -> AudioAsset:
    return AudioAsset(
        path=path,
        format_name="FLAC" if lossless else "MP3",
        lossless=lossless,
        bitrate=bitrate,
        duration=180.0,
        size=1024,
        sample_rate=sample_rate,
        bits_per_sample=bits_per_sample if lossless else 0,
        channels=channels,
    )


@pytest.fixture
def asset_factory() -> Callable[..., AudioAsset]:
    return fake_asset


@pytest.fixture
def fake_probe() -> Callable[[Path], AudioAsset]:
    """Probe that trusts extensions: .flac/.wav are CD lossless, .mp3 is 320 kbps.

    Files whose name contains 'corrupt' raise AudioReadError.
    """

    def _probe(path: Path) -> AudioAsset:
        if "corrupt" in path.name:
            raise AudioReadError(f"Unreadable audio file: {path}")
        lossless = path.suffix.lower() in {".flac", ".wav"}
        return fake_asset(path, lossless=lossless, bitrate=1411 if lossless else 320)

    return _probe


class FakeExecutor:
    """In-memory stand-in for the filesystem executor with scriptable failures."""

    def __init__(self, trash_root: Path, fail_on: set[str] | None = None) -> None:
        self._trash_root = trash_root
        self._fail_on = fail_on or set()
        self.calls: list[tuple[str, Path]] = []

    def _maybe_fail(self, kind: str, path: Path) -> None:
        self.calls.append((kind, path))
        if kind in self._fail_on or path.name in self._fail_on:
            raise ExecutorError(f"simulated {kind} failure on {path}")

    def move(self, src: Path, dst: Path) -> ExecutionReceipt:
        self._maybe_fail("move", src)
        digest = compute_path_digest(src)
        dst.parent.mkdir(parents=True, exist_ok=True)
        src.rename(dst)
        return ExecutionReceipt(ActionKind.MOVE, src, dst, dst, digest)

    def delete(self, path: Path) -> ExecutionReceipt:
        self._maybe_fail("delete", path)
        digest = compute_path_digest(path)
        retained = self._trash_root / f"{len(self.calls)}-{path.name}"
        retained.parent.mkdir(parents=True, exist_ok=True)
        path.rename(retained)
        return ExecutionReceipt(ActionKind.DELETE, path, None, retained, digest)

    def restore(self, receipt: ExecutionReceipt) -> None:
        self._maybe_fail("restore", receipt.source)
        assert receipt.retained is not None
        receipt.source.parent.mkdir(parents=True, exist_ok=True)
        receipt.retained.rename(receipt.source)


@pytest.fixture
def fake_executor(tmp_path: Path) -> FakeExecutor:
    return FakeExecutor(tmp_path / "fake-trash")


@pytest.fixture
def failing_executor_factory(tmp_path: Path) -> Callable[[set[str]], FakeExecutor]:
    def _make(fail_on: set[str]) -> FakeExecutor:
        return FakeExecutor(tmp_path / "fake-trash", fail_on=fail_on)

    return _make


class FakeTagReader:
    """TagReader returning canned snapshots keyed by directory name."""

    def __init__(self, snapshots: dict[str, TagSnapshot] | None = None) -> None:
        self._snapshots = snapshots or {}

    def read_tags(self, directory: Path) -> TagSnapshot | None:
        return self._snapshots.get(directory.name)


@pytest.fixture
def tag_reader_factory() -> Callable[..., FakeTagReader]:
    return FakeTagReader


class FakeOracle:
    """DiscogsLookup with canned matches; can simulate a timeout."""

    def __init__(
        self,
        matches: dict[tuple[str, str], DiscogsMatch] | None = None,
        *,
        timeout: bool = False,
    ) -> None:
        self._matches = matches or {}
        self._timeout = timeout
        self.calls: list[tuple[str, str]] = []

    def lookup(self, artist: str, title: str) -> DiscogsMatch | None:
        self.calls.append((artist, title))
        if self._timeout:
            raise OracleTimeout(f"Discogs did not answer for {artist} - {title}")
        return self._matches.get((artist, title))


@pytest.fixture
def oracle_factory() -> Callable[..., FakeOracle]:
    return FakeOracle


@pytest.fixture
def ledger(tmp_path: Path):
    """A RunLedger over a fresh database file."""
    conn = open_ledger(tmp_path / "ledger.db")
    yield RunLedger(conn)
    conn.close()


@pytest.fixture
def exec_config(tmp_path: Path) -> EngineConfig:
    """Config for an executing run with archive and trash inside tmp_path."""
    return EngineConfig(
        dry_run=False,
        workers=2,
        progress_interval=0.0,
        archive_root=tmp_path / "archive",
        trash_root=tmp_path / "trash",
    )
