# ABOUTME: Job-status events, sinks (null, rate-limited, rich progress bar) and run cancellation.
# ABOUTME: Sink failures are logged and swallowed; they never interrupt a run.

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

logger = logging.getLogger(__name__)


class CancellationToken:
    """Run-level cancel flag shared between the coordinator and worker threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ProgressEvent:
    processed: int
    total: int
    groups_found: int = 0
    decisions_verified: int = 0
    decisions_rejected: int = 0
    final: bool = False


@runtime_checkable
class JobStatusSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...


class NullSink:
    def emit(self, event: ProgressEvent) -> None:
        pass


class RateLimitedSink:
    """Forwards at most one event per `interval` seconds to `inner`.

    Final events always go through. Exceptions raised by `inner` are logged
    and dropped.
    """

    def __init__(
        self,
        inner: JobStatusSink,
        interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._inner = inner
        self._interval = interval
        self._clock = clock
        self._last_emit: float | None = None
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            now = self._clock()
            if (
                not event.final
                and self._last_emit is not None
                and now - self._last_emit < self._interval
            ):
                return
            self._last_emit = now
        try:
            self._inner.emit(event)
        except Exception:
            logger.warning("Job status sink failed", exc_info=True)


class RichProgressSink:
    """Renders progress events as a rich progress bar on `console`."""

    def __init__(self, console: Console, description: str = "Analyzing") -> None:
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("groups: {task.fields[groups]}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        self._task = self._progress.add_task(description, total=None, groups=0)
        self._started = False

    def emit(self, event: ProgressEvent) -> None:
        if not self._started:
            self._progress.start()
            self._started = True
        self._progress.update(
            self._task,
            completed=event.processed,
            total=event.total,
            groups=event.groups_found,
        )
        if event.final:
            self.close()

    def close(self) -> None:
        if self._started:
            self._progress.stop()
            self._started = False
