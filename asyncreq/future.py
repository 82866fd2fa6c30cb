"""
Future-returning surface over the single-resolution core.

A ResponseFuture is handed to the HTTP layer immediately; producers complete it
later. It is backed by a PendingRequest, so first-writer-wins, observer
ordering and replay-after-resolution are exactly those of the suspend/resume
surface.

Usage:
    future = ResponseFuture()
    future.complete_after_timeout({"message": "timed out"}, 8.0)
    pool.submit(lambda: future.complete(compute()))

    outcome = await future.to_asyncio()      # from an event loop
    value = future.result(timeout=10)        # or blocking

Downstream cancellation (the consumer went away) resolves the future as
Cancelled and notifies on_cancel observers. It does not stop the producer by
itself; whoever owns the producer decides that in an on_cancel observer.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from typing import Any, Callable, Optional

from asyncreq.exceptions import DeadlineExceeded
from asyncreq.models import Cancelled, Failure, Outcome, Success, Timeout
from asyncreq.pending import PendingRequest
from asyncreq.scheduler import TimeoutScheduler


logger = logging.getLogger(__name__)


class ResponseFuture:
    """Single-assignment future whose value is a terminal Outcome."""

    def __init__(
        self,
        pending: Optional[PendingRequest] = None,
        *,
        scheduler: Optional[TimeoutScheduler] = None,
    ) -> None:
        self._pending = pending or PendingRequest()
        self._scheduler = scheduler

    @property
    def request_id(self) -> str:
        return self._pending.request_id

    @property
    def pending(self) -> PendingRequest:
        return self._pending

    @property
    def outcome(self) -> Optional[Outcome]:
        return self._pending.outcome

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def complete(self, value: Any) -> bool:
        """Complete normally. Returns False if something else already won."""
        return self._pending.resolve(Success(value))

    def complete_with_error(self, error: BaseException) -> bool:
        """Complete exceptionally. Returns False if something else already won."""
        return self._pending.resolve(Failure(error))

    def complete_after_timeout(self, fallback: Any, duration: float) -> "ResponseFuture":
        """
        Race normal completion against a deadline.

        If the future is still open after ``duration`` seconds it resolves as
        Timeout(fallback). The timer is cancelled when anything else wins.
        """
        if duration <= 0:
            raise ValueError("timeout must be > 0")
        if self._scheduler is None:
            self._scheduler = TimeoutScheduler()

        def on_deadline() -> None:
            if self._pending.resolve(Timeout(fallback)):
                logger.warning("[%s] Future timed out after %.2fs", self.request_id, duration)

        timer = self._scheduler.schedule(
            duration, on_deadline, name=f"{self.request_id}-timeout"
        )
        self._pending.attach_timeout(timer)
        return self

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def cancel(self, reason: str = "consumer cancelled") -> bool:
        """The consumer went away. Returns False if already resolved."""
        return self._pending.resolve(Cancelled(reason))

    def on_cancel(self, callback: Callable[[Optional[str]], None]) -> None:
        """Call ``callback(reason)`` if (and only if) the future ends Cancelled."""

        def observer(outcome: Outcome) -> None:
            if isinstance(outcome, Cancelled):
                callback(outcome.reason)

        self._pending.register_observer(observer)

    def add_done_callback(self, callback: Callable[[Outcome], None]) -> None:
        """Call ``callback(outcome)`` once the future resolves (replayed if done)."""
        self._pending.register_observer(callback)

    def done(self) -> bool:
        return not self._pending.is_open()

    def cancelled(self) -> bool:
        return isinstance(self._pending.outcome, Cancelled)

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Block for the value.

        Raises:
            TimeoutError: Nothing resolved within ``timeout``.
            concurrent.futures.CancelledError: The future was cancelled.
            DeadlineExceeded: Timed out and no fallback was given.
            Exception: The producer's error, for Failure outcomes.
        """
        outcome = self._pending.wait(timeout)
        if outcome is None:
            raise TimeoutError(f"Future {self.request_id} not resolved after {timeout}s")
        if isinstance(outcome, Success):
            return outcome.value
        if isinstance(outcome, Failure):
            raise outcome.error
        if isinstance(outcome, Timeout):
            if outcome.fallback is None:
                raise DeadlineExceeded()
            return outcome.fallback
        raise concurrent.futures.CancelledError(outcome.reason)

    def to_asyncio(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Future:
        """
        Bridge into an asyncio.Future that resolves to the Outcome.

        Cancelling the returned asyncio future cancels this one.
        """
        loop = loop or asyncio.get_running_loop()
        bridge: asyncio.Future = loop.create_future()

        def deliver(outcome: Outcome) -> None:
            if not bridge.done():
                bridge.set_result(outcome)

        def forward(outcome: Outcome) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(deliver, outcome)

        def propagate_cancel(fut: asyncio.Future) -> None:
            if fut.cancelled():
                self.cancel("awaiting task cancelled")

        bridge.add_done_callback(propagate_cancel)
        self.add_done_callback(forward)
        return bridge

    def __repr__(self) -> str:
        return f"ResponseFuture({self._pending!r})"


__all__ = ["ResponseFuture"]
