# ABOUTME: Normalized destination layout for kept albums: <Artist>/<Title> (<Year>) [<Catalog>].
# ABOUTME: Produces filesystem-safe names and resolves collisions with " (1)", " (2)" suffixes.

import re
from pathlib import Path

from albumery.metadata.types import MetadataRecord

_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_COLLISION_SUFFIX_RE = re.compile(r"^(?P<base>.+) \((?P<n>\d+)\)$")
_MAX_COMPONENT_LENGTH = 180
_MAX_COLLISION_ATTEMPTS = 10_000


def sanitize_component(name: str) -> str:
    """Make `name` usable as one path component on common filesystems."""
    cleaned = _UNSAFE_CHARS_RE.sub("_", name)
    cleaned = re.sub(r"\s+", " ", cleaned).strip().rstrip(". ")
    cleaned = cleaned[:_MAX_COMPONENT_LENGTH].rstrip(". ")
    return cleaned or "_"


def album_folder_name(record: MetadataRecord) -> str:
    parts = [record.title or record.directory or "Unknown Album"]
    if record.year:
        parts.append(f"({record.year})")
    if record.catalog_number:
        parts.append(f"[{record.catalog_number}]")
    return sanitize_component(" ".join(parts))


def destination_for(record: MetadataRecord, destination_root: Path) -> Path:
    """Where a kept album belongs, before collision handling."""
    artist = sanitize_component(record.artist or "Unknown Artist")
    return destination_root / artist / album_folder_name(record)


def unique_path(path: Path) -> Path:
    """`path` if free, else the first free 'name (n)' sibling."""
    if not path.exists():
        return path
    for counter in range(1, _MAX_COLLISION_ATTEMPTS + 1):
        candidate = path.with_name(f"{path.name} ({counter})")
        if not candidate.exists():
            return candidate
    raise OSError(
        f"Could not find a non-colliding name after {_MAX_COLLISION_ATTEMPTS} attempts: {path}"
    )


def already_placed(current: Path, target: Path) -> bool:
    """True when `current` is `target` or one of its collision-suffixed siblings."""
    if current == target:
        return True
    if current.parent != target.parent:
        return False
    match = _COLLISION_SUFFIX_RE.match(current.name)
    return bool(match) and match.group("base") == target.name
