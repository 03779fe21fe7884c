# ABOUTME: SHA-256 content digests for files and whole directory trees.
# ABOUTME: Recorded before every move/delete so an undo can prove nothing changed since.

import hashlib
from pathlib import Path

_CHUNK_SIZE = 65536  # 64 KB


def compute_file_hash(path: Path) -> str:
    """SHA-256 of a file, read in 64KB chunks.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_CHUNK_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_path_digest(path: Path) -> str:
    """Digest of a file, or of a directory's relative paths and file contents.

    Directory digests do not depend on where the tree lives, so a tree moved
    to the trash and back keeps its digest.

    Raises:
        FileNotFoundError: If `path` does not exist.
    """
    if path.is_file():
        return compute_file_hash(path)
    if not path.is_dir():
        raise FileNotFoundError(f"No such file or directory: {path}")

    hasher = hashlib.sha256()
    for entry in sorted(p for p in path.rglob("*") if p.is_file()):
        relative = entry.relative_to(path).as_posix()
        hasher.update(relative.encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(compute_file_hash(entry).encode("ascii"))
        hasher.update(b"\n")
    return hasher.hexdigest()
