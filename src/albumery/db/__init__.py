# ABOUTME: Public API for the albumery ledger database layer.
# ABOUTME: Exports connection management, the RunLedger, digests and stored record types.

from albumery.db.connection import DEFAULT_DB_PATH, open_ledger
from albumery.db.hashing import compute_file_hash, compute_path_digest
from albumery.db.ledger import (
    LedgerFilter,
    LedgerWriteError,
    RunLedger,
    UndoResult,
    UndoStatus,
)
from albumery.db.mapping import ActionRecord, EventRecord, LedgerEntry, ReviewEntry

__all__ = [
    "DEFAULT_DB_PATH",
    "ActionRecord",
    "EventRecord",
    "LedgerEntry",
    "LedgerFilter",
    "LedgerWriteError",
    "ReviewEntry",
    "RunLedger",
    "UndoResult",
    "UndoStatus",
    "compute_file_hash",
    "compute_path_digest",
    "open_ledger",
]
