"""Shared state of the execution engine.

Every piece of state crossing thread boundaries lives here. Callers only
get copies out; the guarded collections themselves are never handed out.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from elm_compat_test.models.result import CompletedEntry, RunResults

log = logging.getLogger(__name__)


class Shutdown:
    """Cancellation token shared by every component.

    It only ever goes from unset to set.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    def request(self, reason: str) -> bool:
        """Set the token. Returns True only for the call that set it."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        log.info("Shutdown requested: %s", reason)
        return True

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float) -> bool:
        """Sleep until the token is set or the timeout elapses."""
        return self._event.wait(timeout)


class WorkQueue[T]:
    """Unbounded multi-producer/multi-consumer queue that can be closed.

    Receivers poll in ``poll_interval`` steps so a shutdown is observed
    even while nothing arrives.
    """

    def __init__(self, shutdown: Shutdown, poll_interval: float = 0.1) -> None:
        self._queue: queue.Queue[T] = queue.Queue()
        self._closed = threading.Event()
        self._shutdown = shutdown
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._unfinished = 0

    def send(self, item: T) -> None:
        if self._closed.is_set():
            raise RuntimeError("Cannot send on a closed queue")
        with self._lock:
            self._unfinished += 1
        self._queue.put(item)

    def task_done(self) -> None:
        """Mark one received item as fully handled."""
        with self._lock:
            if self._unfinished <= 0:
                raise ValueError("task_done() called too many times")
            self._unfinished -= 1

    @property
    def unfinished(self) -> int:
        """Items sent but not yet marked done, whether queued or being handled."""
        with self._lock:
            return self._unfinished

    def close(self) -> None:
        """Mark the end of the stream. Items already queued stay receivable."""
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def receive(self) -> T | None:
        """Take one item, or None once the stream is drained or shutdown is set."""
        while not self._shutdown.requested:
            try:
                return self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                # Nothing is sent after close, so an empty closed queue stays empty.
                if self._closed.is_set() and self._queue.empty():
                    return None
        return None

    def __len__(self) -> int:
        return self._queue.qsize()


class InProgressStore:
    """Targets currently being run, with the instant each one started."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Path, float] = {}
        self._clock = clock

    @contextmanager
    def track(self, path: Path) -> Iterator[float]:
        """Record ``path`` as running for the duration of the block."""
        start = self._clock()
        with self._lock:
            self._entries[path] = start
        try:
            yield start
        finally:
            with self._lock:
                self._entries.pop(path, None)

    def snapshot(self) -> Sequence[tuple[Path, float]]:
        """Copy of (path, start) pairs, oldest first."""
        with self._lock:
            entries = list(self._entries.items())
        return sorted(entries, key=lambda entry: entry[1])

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CompletedStore:
    """Append-only list of completed targets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[CompletedEntry] = []

    def append(self, entry: CompletedEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def snapshot(self) -> Sequence[CompletedEntry]:
        """Copy of the entries in append order."""
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(kw_only=True)
class EngineState:
    """Everything shared between the walker, the workers and the dashboard."""

    shutdown: Shutdown
    queue: WorkQueue[Path]
    in_progress: InProgressStore = field(default_factory=InProgressStore)
    completed: CompletedStore = field(default_factory=CompletedStore)
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def create(cls, poll_interval: float = 0.1) -> "EngineState":
        shutdown = Shutdown()
        return cls(shutdown=shutdown, queue=WorkQueue(shutdown, poll_interval))

    def record(self, path: Path, elapsed: float, results: RunResults) -> CompletedEntry:
        entry = CompletedEntry(path=path, elapsed=elapsed, results=results)
        self.completed.append(entry)
        return entry

    @property
    def drained(self) -> bool:
        """Discovery finished and no target is pending or running."""
        return self.queue.closed and self.queue.unfinished == 0
