# ABOUTME: Safety verifier: three independent emptiness checks a directory must pass before deletion.
# ABOUTME: Each check walks the tree its own way so one walker's blind spot cannot authorize a delete.

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from albumery.core.config import DEFAULT_CONFIG, EngineConfig
from albumery.core.progress import CancellationToken

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    PROPOSED = "proposed"
    CHECKING_CONTENT = "checking_content"
    CHECKING_METADATA = "checking_metadata"
    CHECKING_SIZE = "checking_size"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass
class VerificationReport:
    """Outcome of verifying one delete candidate.

    `stage` is the last stage reached. A cancelled report is never verified.
    """

    directory: Path
    state: VerificationState = VerificationState.PROPOSED
    stage: VerificationState = VerificationState.PROPOSED
    reason: str | None = None
    offending: list[str] = field(default_factory=list)
    remaining_bytes: int = 0
    cancelled: bool = False

    @property
    def verified(self) -> bool:
        return self.state is VerificationState.VERIFIED and not self.cancelled

    def describe(self) -> dict[str, object]:
        return {
            "directory": str(self.directory),
            "state": self.state.value,
            "stage": self.stage.value,
            "reason": self.reason,
            "offending": self.offending,
            "remaining_bytes": self.remaining_bytes,
            "cancelled": self.cancelled,
        }


def _audio_files(directory: Path, config: EngineConfig) -> list[str]:
    """Content check: recursive pathlib scan, hidden files included."""
    return sorted(
        str(p.relative_to(directory))
        for p in directory.rglob("*")
        if p.suffix.lower() in config.audio_extensions and not p.is_dir()
    )


def _is_sidecar(name: str, config: EngineConfig) -> bool:
    lowered = name.lower()
    if lowered in config.sidecar_names:
        return True
    return os.path.splitext(lowered)[1] in config.sidecar_extensions


def _non_sidecar_files(directory: Path, config: EngineConfig) -> list[str]:
    """Metadata check: os.scandir walk of non-hidden, non-sidecar files."""
    found: list[str] = []
    pending = [str(directory)]
    while pending:
        current = pending.pop()
        with os.scandir(current) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    pending.append(entry.path)
                elif not entry.name.startswith(".") and not _is_sidecar(entry.name, config):
                    found.append(os.path.relpath(entry.path, directory))
    return sorted(found)


def _total_bytes(directory: Path) -> int:
    """Size check: os.walk total of everything left, hidden files included."""
    total = 0
    for dirpath, _dirnames, filenames in os.walk(directory):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError:
                continue
    return total


def verify_empty(
    directory: Path,
    config: EngineConfig = DEFAULT_CONFIG,
    cancel: CancellationToken | None = None,
) -> VerificationReport:
    """Run the content, metadata and size checks on `directory`, in that order.

    The first failing check rejects. Cancellation is honored between checks
    and leaves the report at the stage reached.
    """
    report = VerificationReport(directory=directory)

    def reject(reason: str) -> VerificationReport:
        report.state = VerificationState.REJECTED
        report.reason = reason
        logger.warning("Verification rejected %s: %s", directory, reason)
        return report

    def cancelled() -> bool:
        if cancel is not None and cancel.cancelled:
            report.cancelled = True
            report.reason = "cancelled"
            return True
        return False

    if not directory.is_dir():
        return reject("directory does not exist")

    stages = (
        VerificationState.CHECKING_CONTENT,
        VerificationState.CHECKING_METADATA,
        VerificationState.CHECKING_SIZE,
    )
    for stage in stages:
        if cancelled():
            return report
        report.stage = stage
        report.state = stage
        try:
            if stage is VerificationState.CHECKING_CONTENT:
                audio = _audio_files(directory, config)
                if audio:
                    report.offending = audio
                    return reject(f"{len(audio)} audio file(s) remain")
            elif stage is VerificationState.CHECKING_METADATA:
                others = _non_sidecar_files(directory, config)
                if others:
                    report.offending = others
                    return reject(f"{len(others)} non-sidecar file(s) remain")
            else:
                report.remaining_bytes = _total_bytes(directory)
                if report.remaining_bytes >= config.negligible_bytes:
                    return reject(
                        f"{report.remaining_bytes} bytes remain "
                        f"(limit {config.negligible_bytes})"
                    )
        except OSError as exc:
            return reject(f"{stage.value} failed: {exc}")

    if cancelled():
        return report
    report.state = VerificationState.VERIFIED
    return report


def check_leftovers(
    directory: Path,
    archived: Iterable[Path],
    config: EngineConfig = DEFAULT_CONFIG,
) -> VerificationReport:
    """Pre-archive metadata check: would anything but `archived` and sidecars remain?

    Runs before any file is moved, so a folder holding notes, cue sheets or
    unreadable audio is rejected while it is still intact. A passing report
    stays PROPOSED; only `verify_empty` can verify a directory.
    """
    report = VerificationReport(directory=directory)
    if not directory.is_dir():
        return report

    moving = {os.path.relpath(p, directory) for p in archived}
    report.stage = VerificationState.CHECKING_METADATA
    try:
        left = [f for f in _non_sidecar_files(directory, config) if f not in moving]
    except OSError as exc:
        report.state = VerificationState.REJECTED
        report.reason = f"{report.stage.value} failed: {exc}"
        return report
    if left:
        report.state = VerificationState.REJECTED
        report.offending = left
        report.reason = f"{len(left)} non-sidecar file(s) would remain after archiving"
        logger.warning("Not archiving %s: %s", directory, report.reason)
    return report
