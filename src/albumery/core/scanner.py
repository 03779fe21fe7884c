# ABOUTME: Directory scanner that finds album directories under a collection root.
# ABOUTME: Disc sub-folders fold into their parent album; probing turns files into AudioAssets.

import logging
import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from albumery.core.config import DEFAULT_AUDIO_EXTENSIONS
from albumery.formats.audio import AudioAsset, AudioProbe, AudioReadError, probe_audio

logger = logging.getLogger(__name__)

# "CD1", "cd 2", "Disc 3", "disk_04"
_DISC_DIR_RE = re.compile(r"^(?:cd|disc|disk)[\s_-]?\d{1,2}$", re.IGNORECASE)


@dataclass
class AlbumDirectory:
    """A directory that directly (or via disc sub-folders) holds audio files."""

    path: Path
    audio_files: list[Path] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class ProbedAlbum:
    """An album directory after its files have been probed."""

    path: Path
    assets: list[AudioAsset]
    unreadable: list[Path] = field(default_factory=list)

    @property
    def is_playable(self) -> bool:
        return bool(self.assets)


def is_disc_folder(path: Path) -> bool:
    return bool(_DISC_DIR_RE.match(path.name))


def _is_excluded(path: Path, root: Path, excluded: list[Path]) -> bool:
    relative = path.relative_to(root)
    if any(part.startswith(".") for part in relative.parts[:-1]):
        return True
    return any(path.is_relative_to(ex) for ex in excluded)


def find_album_directories(
    root: Path,
    audio_extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS,
    exclude: Iterable[Path] = (),
) -> list[AlbumDirectory]:
    """Walk `root` and group audio files by album directory.

    Hidden directories and anything under `exclude` (archive or trash roots
    that live inside the collection) are skipped. Results are sorted by path.
    """
    root = root.resolve()
    excluded = [p.resolve() for p in exclude]
    albums: dict[Path, list[Path]] = defaultdict(list)

    for path in root.rglob("*"):
        if not path.is_file() or path.suffix.lower() not in audio_extensions:
            continue
        if _is_excluded(path, root, excluded):
            continue
        album_dir = path.parent
        if album_dir != root and is_disc_folder(album_dir):
            album_dir = album_dir.parent
        albums[album_dir].append(path)

    return [
        AlbumDirectory(path=directory, audio_files=sorted(files))
        for directory, files in sorted(albums.items())
    ]


def probe_album(album: AlbumDirectory, probe: AudioProbe = probe_audio) -> ProbedAlbum:
    """Probe every audio file of `album`; unreadable files are listed, not raised."""
    assets: list[AudioAsset] = []
    unreadable: list[Path] = []
    for path in album.audio_files:
        try:
            assets.append(probe(path))
        except AudioReadError as exc:
            logger.warning("%s", exc)
            unreadable.append(path)
    return ProbedAlbum(path=album.path, assets=assets, unreadable=unreadable)
