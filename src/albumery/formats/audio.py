# ABOUTME: Audio header probing with mutagen, producing read-only AudioAsset records.
# ABOUTME: Only stream properties are read here; embedded tags are handled in formats.tags.

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import mutagen

logger = logging.getLogger(__name__)

# mutagen FileType class names whose streams are always lossless.
_LOSSLESS_TYPES = frozenset(
    {"FLAC", "WAVE", "AIFF", "MonkeysAudio", "WavPack", "TrueAudio", "OptimFROG", "DSF", "DSDIFF"}
)
_LOSSLESS_MP4_CODECS = frozenset({"alac"})


class AudioReadError(Exception):
    """Raised when a file cannot be identified or its stream header is unreadable."""


@dataclass(frozen=True)
class AudioAsset:
    """One playable file and the stream properties quality scoring needs."""

    path: Path
    format_name: str
    lossless: bool
    bitrate: int
    duration: float
    size: int
    sample_rate: int = 0
    bits_per_sample: int = 0
    channels: int = 0

    @property
    def bitrate_equivalent(self) -> float:
        """kbps for lossy streams; sample_rate x depth x channels / 1000 for lossless."""
        if self.lossless and self.sample_rate and self.bits_per_sample and self.channels:
            return self.sample_rate * self.bits_per_sample * self.channels / 1000
        return float(self.bitrate)


AudioProbe = Callable[[Path], AudioAsset]


def _is_lossless(kind: str, info: object) -> bool:
    if kind in _LOSSLESS_TYPES:
        return True
    if kind == "MP4":
        codec = str(getattr(info, "codec", "")).lower()
        return codec in _LOSSLESS_MP4_CODECS
    return False


def probe_audio(path: Path) -> AudioAsset:
    """Read the stream header of `path`.

    Raises:
        AudioReadError: If mutagen does not recognize the file or the header
            is damaged.
    """
    try:
        audio = mutagen.File(path)
    except (mutagen.MutagenError, OSError) as exc:
        raise AudioReadError(f"Unreadable audio file: {path}: {exc}") from exc
    if audio is None or getattr(audio, "info", None) is None:
        raise AudioReadError(f"Unrecognized audio file: {path}")

    info = audio.info
    kind = type(audio).__name__
    bitrate = int(getattr(info, "bitrate", 0) or 0) // 1000
    return AudioAsset(
        path=path,
        format_name=kind,
        lossless=_is_lossless(kind, info),
        bitrate=bitrate,
        duration=float(getattr(info, "length", 0.0) or 0.0),
        size=path.stat().st_size,
        sample_rate=int(getattr(info, "sample_rate", 0) or 0),
        bits_per_sample=int(getattr(info, "bits_per_sample", 0) or 0),
        channels=int(getattr(info, "channels", 0) or 0),
    )
