# ABOUTME: Contract for the move/delete executor the engine hands destructive work to.
# ABOUTME: Every call returns a receipt with the pre-action digest needed to undo it later.

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable


class ExecutorError(Exception):
    """Raised when a move, delete or restore cannot be carried out."""


class ActionKind(str, Enum):
    MOVE = "move"
    DELETE = "delete"


@dataclass(frozen=True)
class ExecutionReceipt:
    """Proof of one executed action.

    `retained` is where the content lives afterwards (the move target, or the
    trash location of a delete); None means the action cannot be undone.
    """

    kind: ActionKind
    source: Path
    target: Path | None
    retained: Path | None
    digest: str


@runtime_checkable
class Executor(Protocol):
    def move(self, src: Path, dst: Path) -> ExecutionReceipt: ...

    def delete(self, path: Path) -> ExecutionReceipt: ...

    def restore(self, receipt: ExecutionReceipt) -> None: ...
