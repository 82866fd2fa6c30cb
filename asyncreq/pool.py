"""
Shared worker pool for request tasks.

Tasks run on pool threads so the request-accepting thread never blocks on
them. Admission is unbounded by default; with ``max_pending`` set, at most that
many tasks may be running or queued at once and further submissions are
rejected immediately with PoolCapacityError (the submitter never waits).

Usage:
    from asyncreq.pool import WorkerPool

    pool = WorkerPool(max_workers=50, max_pending=500)
    future = pool.submit(work, token)
    stats = pool.stats()
    # PoolStats(max_workers=50, max_pending=500, active=1, queued=0, ...)
    pool.shutdown()

Process-wide default:
    from asyncreq.pool import get_default_pool, configure_default_pool
    configure_default_pool(max_workers=200)
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from asyncreq.exceptions import PoolCapacityError, PoolClosedError


logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 200


@dataclass
class PoolStats:
    """Snapshot of worker pool state."""
    max_workers: int
    max_pending: Optional[int]
    active: int          # tasks currently executing
    queued: int          # tasks accepted but not started
    submitted: int       # total accepted submissions
    completed: int       # total tasks that returned
    failed: int          # total tasks whose exception escaped to the pool
                         # (controller tasks report failures as outcomes instead)
    rejected: int        # total submissions refused for capacity


class WorkerPool:
    """
    Thread pool with optional bounded admission.

    Wraps ThreadPoolExecutor. Task exceptions stay inside the returned Future;
    nothing is rethrown across the pool boundary.
    """

    def __init__(
        self,
        max_workers: int = DEFAULT_MAX_WORKERS,
        *,
        max_pending: Optional[int] = None,
        thread_name_prefix: str = "asyncreq-worker-",
    ) -> None:
        """
        Args:
            max_workers: Threads executing tasks concurrently.
            max_pending: Cap on running + queued tasks. None = unbounded.
            thread_name_prefix: Prefix for worker thread names.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if max_pending is not None and max_pending < 1:
            raise ValueError("max_pending must be >= 1")

        self._max_workers = max_workers
        self._max_pending = max_pending
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._closed = False

        # Stats (atomic via lock)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._active = 0
        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._rejected = 0

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def max_pending(self) -> Optional[int]:
        return self._max_pending

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """
        Schedule ``fn(*args, **kwargs)`` on a worker thread.

        Raises:
            PoolCapacityError: Bounded pool is full.
            PoolClosedError: Pool was shut down.
        """
        with self._lock:
            if self._closed:
                raise PoolClosedError("Worker pool is shut down", code="pool_closed")
            if self._max_pending is not None and self._in_flight >= self._max_pending:
                self._rejected += 1
                raise PoolCapacityError(
                    f"Worker pool at capacity ({self._max_pending} pending tasks)",
                    max_pending=self._max_pending,
                )
            self._in_flight += 1
            self._submitted += 1

        try:
            future = self._executor.submit(self._run, fn, args, kwargs)
        except RuntimeError as e:
            # Executor shut down between our check and submit
            with self._lock:
                self._in_flight -= 1
                self._submitted -= 1
            raise PoolClosedError(str(e), code="pool_closed") from e
        future.add_done_callback(self._release_if_dropped)
        return future

    def _release_if_dropped(self, future: Future) -> None:
        # A cancelled future never reached _run, so nothing else frees its slot
        if future.cancelled():
            with self._lock:
                self._in_flight -= 1

    def _run(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        with self._lock:
            self._active += 1
        ok = False
        try:
            result = fn(*args, **kwargs)
            ok = True
            return result
        finally:
            with self._lock:
                self._active -= 1
                self._in_flight -= 1
                if ok:
                    self._completed += 1
                else:
                    self._failed += 1

    def stats(self) -> PoolStats:
        """Current pool state for monitoring."""
        with self._lock:
            return PoolStats(
                max_workers=self._max_workers,
                max_pending=self._max_pending,
                active=self._active,
                queued=self._in_flight - self._active,
                submitted=self._submitted,
                completed=self._completed,
                failed=self._failed,
                rejected=self._rejected,
            )

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work. Queued tasks that have not started are dropped."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info(
            "WorkerPool stopped: completed=%d, failed=%d, rejected=%d",
            self._completed, self._failed, self._rejected,
        )


# Global default pool
_default_pool: Optional[WorkerPool] = None
_default_lock = threading.Lock()


def get_default_pool() -> WorkerPool:
    """
    Get the process-wide pool.

    Creates an unbounded pool with default settings if not configured.
    Thread-safe singleton.
    """
    global _default_pool
    if _default_pool is None:
        with _default_lock:
            if _default_pool is None:
                _default_pool = WorkerPool()
    assert _default_pool is not None
    return _default_pool


def configure_default_pool(
    max_workers: int = DEFAULT_MAX_WORKERS,
    *,
    max_pending: Optional[int] = None,
    force_reconfigure: bool = False,
) -> WorkerPool:
    """
    Configure the process-wide pool.

    Call at startup before any submission. Replacing a pool that already ran
    tasks requires force_reconfigure=True; the old pool is shut down.
    """
    global _default_pool

    with _default_lock:
        previous = _default_pool
        if previous is not None and not force_reconfigure:
            if previous.stats().submitted > 0:
                raise RuntimeError(
                    "Cannot reconfigure pool after use. "
                    "Set force_reconfigure=True to override."
                )
        _default_pool = WorkerPool(max_workers=max_workers, max_pending=max_pending)

    if previous is not None:
        previous.shutdown(wait=False)
    return _default_pool


def reset_default_pool() -> None:
    """Shut down and forget the default pool. For testing only."""
    global _default_pool
    with _default_lock:
        previous, _default_pool = _default_pool, None
    if previous is not None:
        previous.shutdown(wait=False)


__all__ = [
    "PoolStats",
    "WorkerPool",
    "get_default_pool",
    "configure_default_pool",
    "reset_default_pool",
]
