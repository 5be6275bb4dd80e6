"""
Single-writer access to the baseline store.

Analyses may run concurrently, but the store's per-player rollups are
read-modify-write aggregates. One daemon thread owns every store mutation;
analyses hand it finished games and wait on a Future for the commit.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field

from botsight.analysis.models import GameAnalysisResult
from botsight.infra.database import BaselineStore

logger = logging.getLogger(__name__)


@dataclass
class WriteJob:
    """A finished game waiting to be committed."""

    result: GameAnalysisResult
    replace: bool = False
    future: Future = field(default_factory=Future)


_STOP = object()


class BaselineWriter:
    """
    Serializes all writes to a BaselineStore through one thread.

    Usage:
        with BaselineWriter(store) as writer:
            written = writer.write(result)  # blocks until committed

    submit() returns a Future resolving to True when the game was written,
    False when it was already stored (and `replace` was not set), or raising
    the store's StoreWriteError.
    """

    def __init__(self, store: BaselineStore):
        self.store = store
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._written = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def games_written(self) -> int:
        return self._written

    def start(self) -> None:
        """Start the writer thread (no-op if already running)."""
        with self._lock:
            if self.is_running:
                return
            self._thread = threading.Thread(
                target=self._run, name="baseline-writer", daemon=True
            )
            self._thread.start()
            logger.debug("Baseline writer started")

    def stop(self, timeout: float | None = None) -> None:
        """Drain queued writes and stop the thread."""
        with self._lock:
            if self._thread is None:
                return
            self._queue.put(_STOP)
            self._thread.join(timeout)
            self._thread = None
            logger.debug(f"Baseline writer stopped after {self._written} games")

    def submit(self, result: GameAnalysisResult, replace: bool = False) -> Future:
        """Queue a game for writing; starts the thread if needed."""
        if not self.is_running:
            self.start()
        job = WriteJob(result=result, replace=replace)
        self._queue.put(job)
        return job.future

    def write(
        self, result: GameAnalysisResult, replace: bool = False, timeout: float | None = None
    ) -> bool:
        """Queue a game and wait until it is committed."""
        return self.submit(result, replace=replace).result(timeout)

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                if not job.future.set_running_or_notify_cancel():
                    continue
                try:
                    written = self.store.record_game(job.result, replace=job.replace)
                except Exception as e:
                    job.future.set_exception(e)
                else:
                    if written:
                        self._written += 1
                    job.future.set_result(written)
            finally:
                self._queue.task_done()

    def __enter__(self) -> BaselineWriter:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
