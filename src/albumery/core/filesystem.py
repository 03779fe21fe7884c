# ABOUTME: Default executor: shutil moves, and deletes that park content in a trash directory.
# ABOUTME: Nothing is ever unlinked, so every executed action stays reversible.

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from albumery.core.executor import ActionKind, ExecutionReceipt, ExecutorError
from albumery.core.layout import unique_path
from albumery.db.hashing import compute_path_digest

logger = logging.getLogger(__name__)

DEFAULT_TRASH_ROOT = Path.home() / ".albumery" / "trash"


class FilesystemExecutor:
    """Executor over the local filesystem.

    `delete` moves the directory under `trash_root/<timestamp>/` instead of
    removing it; emptying the trash is left to the user.
    """

    def __init__(self, trash_root: Path | None = None) -> None:
        self._trash_root = trash_root or DEFAULT_TRASH_ROOT

    @property
    def trash_root(self) -> Path:
        return self._trash_root

    def move(self, src: Path, dst: Path) -> ExecutionReceipt:
        if not src.exists():
            raise ExecutorError(f"Cannot move missing path: {src}")
        if dst.exists():
            raise ExecutorError(f"Move target already exists: {dst}")
        try:
            digest = compute_path_digest(src)
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dst))
        except OSError as exc:
            raise ExecutorError(f"Move failed {src} -> {dst}: {exc}") from exc
        logger.info("Moved %s -> %s", src, dst)
        return ExecutionReceipt(
            kind=ActionKind.MOVE, source=src, target=dst, retained=dst, digest=digest
        )

    def delete(self, path: Path) -> ExecutionReceipt:
        if not path.exists():
            raise ExecutorError(f"Cannot delete missing path: {path}")
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        retained = unique_path(self._trash_root / stamp / path.name)
        try:
            digest = compute_path_digest(path)
            retained.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(retained))
        except OSError as exc:
            raise ExecutorError(f"Delete failed for {path}: {exc}") from exc
        logger.info("Deleted %s (retained at %s)", path, retained)
        return ExecutionReceipt(
            kind=ActionKind.DELETE, source=path, target=None, retained=retained, digest=digest
        )

    def restore(self, receipt: ExecutionReceipt) -> None:
        """Put retained content back at its original location."""
        if receipt.retained is None or not receipt.retained.exists():
            raise ExecutorError(f"Nothing retained to restore for {receipt.source}")
        if receipt.source.exists():
            raise ExecutorError(f"Restore target already exists: {receipt.source}")
        try:
            receipt.source.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(receipt.retained), str(receipt.source))
        except OSError as exc:
            raise ExecutorError(f"Restore failed for {receipt.source}: {exc}") from exc
        logger.info("Restored %s from %s", receipt.source, receipt.retained)
