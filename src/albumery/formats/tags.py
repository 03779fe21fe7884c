# ABOUTME: Embedded-tag reader: summarizes an album directory's track tags with mutagen.
# ABOUTME: Damaged files are skipped; a directory with no usable tags yields None.

import logging
from collections import Counter
from pathlib import Path

import mutagen

from albumery.core.config import DEFAULT_AUDIO_EXTENSIONS
from albumery.metadata.normalizer import comparison_key, parse_year
from albumery.metadata.provider import TagSnapshot

logger = logging.getLogger(__name__)

_ARTIST_KEYS = ("albumartist", "album artist", "artist")
_LABEL_KEYS = ("label", "organization", "publisher")
_CATALOG_KEYS = ("catalognumber", "catalog #", "labelno")
_YEAR_KEYS = ("date", "originaldate", "year")


def _first_value(tags: object, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        try:
            values = tags[key]  # type: ignore[index]
        except (KeyError, ValueError, TypeError):
            continue
        if isinstance(values, str):
            values = [values]
        for value in values or []:
            text = str(value).strip()
            if text:
                return text
    return None


class MutagenTagReader:
    """TagReader over mutagen's "easy" tag interface.

    Values are taken from the most common artist/album pair across tracks;
    `agreement` reports how many tagged tracks share it.
    """

    def __init__(self, audio_extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS) -> None:
        self._extensions = audio_extensions

    def _track_tags(self, directory: Path) -> list[dict[str, str | None]]:
        tracks = []
        for path in sorted(directory.rglob("*")):
            if not path.is_file() or path.suffix.lower() not in self._extensions:
                continue
            try:
                audio = mutagen.File(path, easy=True)
            except (mutagen.MutagenError, OSError) as exc:
                logger.debug("Skipping tags of %s: %s", path, exc)
                continue
            if audio is None or not audio.tags:
                continue
            tracks.append(
                {
                    "artist": _first_value(audio.tags, _ARTIST_KEYS),
                    "album": _first_value(audio.tags, ("album",)),
                    "year": _first_value(audio.tags, _YEAR_KEYS),
                    "label": _first_value(audio.tags, _LABEL_KEYS),
                    "catalog": _first_value(audio.tags, _CATALOG_KEYS),
                }
            )
        return tracks

    def read_tags(self, directory: Path) -> TagSnapshot | None:
        tracks = [t for t in self._track_tags(directory) if t["artist"] or t["album"]]
        if not tracks:
            return None

        pairs = Counter(
            (comparison_key(t["artist"]), comparison_key(t["album"])) for t in tracks
        )
        winning_pair, count = pairs.most_common(1)[0]
        winners = [
            t
            for t in tracks
            if (comparison_key(t["artist"]), comparison_key(t["album"])) == winning_pair
        ]
        first = winners[0]

        def common(key: str) -> str | None:
            found = Counter(t[key] for t in winners if t[key])
            return found.most_common(1)[0][0] if found else None

        return TagSnapshot(
            artist=first["artist"],
            album=first["album"],
            year=parse_year(common("year")),
            label=common("label"),
            catalog_number=common("catalog"),
            track_count=len(tracks),
            agreement=round(count / len(tracks), 4),
        )
