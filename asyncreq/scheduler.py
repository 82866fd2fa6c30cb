"""
Deadline timers for pending requests.

Every request gets one ScheduledTimeout. When the request resolves through any
other path the timeout is cancelled, so a late timer never fires against a
finished request. Timers run on daemon threads and never block the caller.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


class ScheduledTimeout:
    """
    Handle for a single scheduled deadline.

    Exactly one of ``fired`` / ``cancelled`` ends up True (or neither, while
    the timer is still pending).
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        *,
        name: str,
        on_done: Optional[Callable[["ScheduledTimeout"], None]] = None,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.name = name
        self.delay = delay
        self.deadline = time.monotonic() + delay
        self._callback = callback
        self._on_done = on_done
        self._lock = threading.Lock()
        self._fired = False
        self._cancelled = False
        self._timer = threading.Timer(delay, self._fire)
        self._timer.daemon = True
        self._timer.name = name

    def start(self) -> "ScheduledTimeout":
        self._timer.start()
        return self

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not (self._fired or self._cancelled)

    def remaining(self) -> float:
        """Seconds until the deadline (0 once fired or cancelled)."""
        if not self.pending:
            return 0.0
        return max(0.0, self.deadline - time.monotonic())

    def cancel(self) -> bool:
        """Cancel the timer. Returns False if it already fired or was cancelled."""
        with self._lock:
            if self._fired or self._cancelled:
                return False
            self._cancelled = True
        self._timer.cancel()
        self._done()
        return True

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._fired = True
        try:
            self._callback()
        except Exception:
            logger.exception("Timeout callback failed: %s", self.name)
        finally:
            self._done()

    def _done(self) -> None:
        if self._on_done is not None:
            self._on_done(self)

    def __repr__(self) -> str:
        if self._fired:
            state = "fired"
        elif self._cancelled:
            state = "cancelled"
        else:
            state = f"pending, {self.remaining():.2f}s left"
        return f"ScheduledTimeout({self.name}, {state})"


class TimeoutScheduler:
    """Creates deadline timers and tracks the ones still outstanding."""

    def __init__(self, name_prefix: str = "asyncreq-timeout-") -> None:
        self._name_prefix = name_prefix
        self._lock = threading.Lock()
        self._outstanding: Dict[int, ScheduledTimeout] = {}
        self._closed = False

    def schedule(
        self,
        delay: float,
        callback: Callable[[], None],
        *,
        name: Optional[str] = None,
    ) -> ScheduledTimeout:
        """Run ``callback`` once after ``delay`` seconds unless cancelled first."""
        timeout = ScheduledTimeout(
            delay,
            callback,
            name=name or f"{self._name_prefix}{uuid.uuid4().hex[:8]}",
            on_done=self._forget,
        )
        with self._lock:
            if self._closed:
                raise RuntimeError("Scheduler is shut down")
            self._outstanding[id(timeout)] = timeout
        return timeout.start()

    def pending(self) -> int:
        """Number of timers that have neither fired nor been cancelled."""
        with self._lock:
            return len(self._outstanding)

    def shutdown(self) -> int:
        """Cancel every outstanding timer. Returns how many were cancelled."""
        with self._lock:
            self._closed = True
            timers = list(self._outstanding.values())
        cancelled = sum(1 for t in timers if t.cancel())
        if cancelled:
            logger.info("Scheduler shut down, %d timers cancelled", cancelled)
        return cancelled

    def _forget(self, timeout: ScheduledTimeout) -> None:
        with self._lock:
            self._outstanding.pop(id(timeout), None)


__all__ = ["ScheduledTimeout", "TimeoutScheduler"]
