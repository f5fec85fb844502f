"""Bounded worker pool with blocking submission.

This module runs batch units on a capped set of worker threads fed by a
bounded queue. When the queue is full, ``submit`` blocks the producer until
a worker takes the next unit, so memory stays bounded by workers in flight
plus queue depth. Units are only dropped when the pool is cancelled after a
fault, so no queued batch starts once its run has been aborted.
"""

from __future__ import annotations

from queue import Empty, Full, Queue
import threading
import time
from typing import Callable

from core.constants import DEFAULT_DRAIN_TIMEOUT_SECONDS, DEFAULT_QUEUE_CAPACITY, DEFAULT_WORKER_COUNT
from core.errors import ConceptFeedIngestError, ConceptFeedTimeoutError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

_STOP_POLL_SECONDS = 0.05

WorkUnit = Callable[[], object]


class BoundedWorkerPool:
    """Execute submitted units on at most ``max_workers`` threads."""

    def __init__(
        self,
        max_workers: int = DEFAULT_WORKER_COUNT,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        drain_timeout_seconds: float = DEFAULT_DRAIN_TIMEOUT_SECONDS,
        name: str = "import-worker",
    ) -> None:
        if max_workers <= 0 or queue_capacity <= 0:
            raise ValueError("max_workers and queue_capacity must be positive")
        self._max_workers = max_workers
        self._drain_timeout_seconds = drain_timeout_seconds
        self._name = name
        self._queue: Queue[WorkUnit | None] = Queue(maxsize=queue_capacity)
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._failures: list[BaseException] = []
        self._shutdown = False
        self._cancelled = False
        self.submitted_count = 0
        self.completed_count = 0

    @property
    def worker_count(self) -> int:
        return len(self._threads)

    def submit(self, unit: WorkUnit) -> None:
        """Queue one unit, blocking while the pending queue is full.

        Raises:
            ConceptFeedIngestError: If the pool was already closed.
        """
        if self._shutdown:
            raise ConceptFeedIngestError("Cannot submit work to a pool that is closed.")
        self._ensure_worker()
        self._queue.put(unit)
        self.submitted_count += 1

    def close(self) -> None:
        """Refuse further submissions; queued units still run."""
        self._shutdown = True

    def cancel(self, timeout_seconds: float | None = None) -> bool:
        """Drop queued units and stop workers once their current unit returns.

        Returns:
            Whether every worker exited within the timeout.
        """
        self.close()
        discarded = self._discard_pending()
        self._release_workers(time.monotonic() + self._timeout(timeout_seconds))
        alive = self._alive_workers()
        _LOGGER.info("import_pool_cancelled", discarded=discarded, alive_workers=alive)
        return not alive

    def await_termination(self, timeout_seconds: float | None = None) -> None:
        """Wait until every submitted unit has run and all workers exited.

        On timeout, units still queued are dropped so nothing new starts.

        Raises:
            ConceptFeedTimeoutError: If the pool does not drain in time.
            ConceptFeedIngestError: If a unit raised.
        """
        self.close()
        timeout = self._timeout(timeout_seconds)
        deadline = time.monotonic() + timeout
        self._post_stop_signals(deadline)
        for thread in self._threads:
            thread.join(_remaining(deadline))
        if self._alive_workers():
            self._discard_pending()
            self._wake_idle_workers()
            raise self._timeout_error(timeout)
        if self._failures:
            first_failure = self._failures[0]
            raise ConceptFeedIngestError(
                f"{len(self._failures)} import task(s) failed: {first_failure}"
            ) from first_failure

    def __enter__(self) -> "BoundedWorkerPool":
        return self

    def __exit__(self, exc_type: object, exc: object, traceback: object) -> None:
        if exc is None:
            self.await_termination()
        elif not self.cancel():
            _LOGGER.error("import_workers_still_running", alive_workers=self._alive_workers())

    def _ensure_worker(self) -> None:
        with self._lock:
            if len(self._threads) >= self._max_workers:
                return
            thread = threading.Thread(
                target=self._worker_loop,
                name=f"{self._name}-{len(self._threads)}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def _worker_loop(self) -> None:
        while not self._cancelled:
            unit = self._queue.get()
            if unit is None or self._cancelled:
                return
            try:
                unit()
            except Exception as error:
                _LOGGER.error("import_task_crashed", worker=threading.current_thread().name, error=str(error))
                with self._lock:
                    self._failures.append(error)
            finally:
                with self._lock:
                    self.completed_count += 1

    def _discard_pending(self) -> int:
        self._cancelled = True
        discarded = 0
        while True:
            try:
                unit = self._queue.get_nowait()
            except Empty:
                return discarded
            if unit is not None:
                discarded += 1

    def _post_stop_signals(self, deadline: float) -> None:
        try:
            for _ in self._threads:
                self._queue.put(None, timeout=_remaining(deadline))
        except Full:
            return

    def _release_workers(self, deadline: float) -> None:
        while self._alive_workers() and _remaining(deadline) > 0:
            try:
                self._queue.put(None, timeout=min(_STOP_POLL_SECONDS, _remaining(deadline)))
            except Full:
                continue

    def _wake_idle_workers(self) -> None:
        for _ in self._alive_workers():
            try:
                self._queue.put_nowait(None)
            except Full:
                return

    def _alive_workers(self) -> list[str]:
        return [thread.name for thread in self._threads if thread.is_alive()]

    def _timeout(self, timeout_seconds: float | None) -> float:
        return self._drain_timeout_seconds if timeout_seconds is None else timeout_seconds

    def _timeout_error(self, timeout: float) -> ConceptFeedTimeoutError:
        return ConceptFeedTimeoutError(
            f"Import workers did not finish within {timeout:g} seconds "
            f"({self.completed_count} of {self.submitted_count} batches done)."
        )


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())
