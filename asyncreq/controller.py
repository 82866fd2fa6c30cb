"""
Request lifecycle controller.

Wires one PendingRequest to a deadline timer, a disconnect signal and a task
running on the shared WorkerPool, then returns without waiting. Whichever of
{task result, task error, deadline, explicit cancel} lands first resolves the
request; later events are discarded.

Two surfaces share the same core:

    Suspend and resume:
        handle = controller.begin_async(service, timeout=8.0, transport=t)
        handle.on_completion(lambda outcome: ...)
        handle.disconnect()          # called by the transport on peer gone

    Future:
        future = controller.begin_future(service, timeout=8.0, fallback=...)
        outcome = await future.to_asyncio()
        future.cancel()              # consumer went away

Disconnect handling follows one DisconnectPolicy for both surfaces. With
CANCEL (default) a peer disconnect or downstream cancel flips the task's
CancellationToken; the task then fails with InterruptedSignal at its next
checkpoint. With OBSERVE the event is only logged.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from asyncreq.cancellation import CancellationToken
from asyncreq.exceptions import AsyncReqError, PoolClosedError
from asyncreq.future import ResponseFuture
from asyncreq.models import (
    Cancelled,
    DisconnectPolicy,
    Failure,
    Outcome,
    OutcomeKind,
    Result,
    Success,
    Timeout,
    describe,
)
from asyncreq.pending import CompletionObserver, DisconnectObserver, PendingRequest
from asyncreq.pool import WorkerPool
from asyncreq.scheduler import TimeoutScheduler
from asyncreq.transport import Transport


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0

TaskFactory = Callable[[CancellationToken], Any]
TimeoutHandler = Callable[["AsyncResponse"], Any]


# =============================================================================
# Suspend-and-resume handle
# =============================================================================


class AsyncResponse:
    """
    Handle for a suspended request.

    Producers call resume() with Success or Failure. The deadline, if it wins,
    resolves Timeout with whatever the on_timeout handler returned.
    """

    def __init__(
        self,
        pending: PendingRequest,
        token: CancellationToken,
        scheduler: TimeoutScheduler,
        *,
        label: str = "Suspended",
    ) -> None:
        self._pending = pending
        self._scheduler = scheduler
        self._timeout_handler: Optional[TimeoutHandler] = None
        self.token = token
        self.label = label
        self.timeout: Optional[float] = None

    @property
    def request_id(self) -> str:
        return self._pending.request_id

    @property
    def pending(self) -> PendingRequest:
        return self._pending

    @property
    def outcome(self) -> Optional[Outcome]:
        return self._pending.outcome

    def resume(self, result: Result) -> bool:
        """Resolve with the task's result. Returns False if already resolved."""
        if not isinstance(result, (Success, Failure)):
            raise TypeError(f"resume() takes Success or Failure, got {type(result).__name__}")
        return self._pending.resolve(result)

    def cancel(self, reason: str = "cancelled") -> bool:
        """Resolve as Cancelled and ask the task to stop."""
        if not self._pending.resolve(Cancelled(reason)):
            return False
        self.token.cancel(reason)
        return True

    def set_timeout(self, seconds: float) -> None:
        """(Re)arm the deadline, relative to now."""
        if seconds <= 0:
            raise ValueError("timeout must be > 0")
        timer = self._scheduler.schedule(
            seconds, self._on_deadline, name=f"{self.request_id}-timeout"
        )
        self.timeout = seconds
        self._pending.attach_timeout(timer)

    def on_timeout(self, handler: TimeoutHandler) -> None:
        """``handler(handle)`` returns the fallback carried by the Timeout outcome."""
        self._timeout_handler = handler

    def on_disconnect(self, callback: DisconnectObserver) -> None:
        self._pending.register_disconnect_observer(callback)

    def on_completion(self, callback: CompletionObserver) -> None:
        self._pending.register_observer(callback)

    def disconnect(self) -> bool:
        """Transport reports the peer is gone. Nothing will be transmitted."""
        return self._pending.notify_disconnect()

    def is_suspended(self) -> bool:
        return self._pending.is_open()

    def is_done(self) -> bool:
        return not self._pending.is_open()

    def is_cancelled(self) -> bool:
        return isinstance(self._pending.outcome, Cancelled)

    def wait(self, timeout: Optional[float] = None) -> Optional[Outcome]:
        return self._pending.wait(timeout)

    def _on_deadline(self) -> None:
        if not self._pending.is_open():
            return
        fallback = None
        if self._timeout_handler is not None:
            try:
                fallback = self._timeout_handler(self)
            except Exception:
                logger.exception("[%s] %s - Timeout handler failed", self.request_id, self.label)
        if self._pending.resolve(Timeout(fallback)):
            logger.warning("[%s] %s - Request timed out", self.request_id, self.label)
        else:
            logger.debug("[%s] %s - Deadline fired after resolution, ignored", self.request_id, self.label)

    def __repr__(self) -> str:
        return f"AsyncResponse({self._pending!r})"


# =============================================================================
# Controller
# =============================================================================


@dataclass
class ControllerStats:
    """Snapshot of controller activity."""
    in_flight: int
    outcomes: Dict[str, int] = field(default_factory=dict)


class LifecycleController:
    """
    Orchestrates submission, deadline, disconnect handling and first-wins
    resolution for every request it begins.

    The pool and scheduler are explicit dependencies; a private scheduler is
    created when none is given.
    """

    def __init__(
        self,
        pool: WorkerPool,
        scheduler: Optional[TimeoutScheduler] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        disconnect_policy: DisconnectPolicy = DisconnectPolicy.CANCEL,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.pool = pool
        self.scheduler = scheduler or TimeoutScheduler()
        self.timeout = timeout
        self.disconnect_policy = DisconnectPolicy(disconnect_policy)

        self._lock = threading.Lock()
        self._requests: Set[PendingRequest] = set()
        self._outcomes: Counter = Counter()

    # ------------------------------------------------------------------
    # Suspend-and-resume surface
    # ------------------------------------------------------------------

    def suspend(
        self,
        timeout: Optional[float] = None,
        *,
        request_id: Optional[str] = None,
        transport: Optional[Transport] = None,
        timeout_handler: Optional[TimeoutHandler] = None,
        label: str = "Suspended",
    ) -> AsyncResponse:
        """Create a suspended handle with its deadline armed. No task is submitted."""
        pending = PendingRequest(request_id, transport=transport)
        handle = AsyncResponse(pending, CancellationToken(), self.scheduler, label=label)
        if timeout_handler is not None:
            handle.on_timeout(timeout_handler)
        handle.set_timeout(self.timeout if timeout is None else timeout)
        self._track(pending, label)
        return handle

    def begin_async(
        self,
        task_factory: TaskFactory,
        timeout: Optional[float] = None,
        *,
        on_disconnect: Optional[DisconnectPolicy] = None,
        transport: Optional[Transport] = None,
        request_id: Optional[str] = None,
        timeout_handler: Optional[TimeoutHandler] = None,
        label: str = "Suspended",
    ) -> AsyncResponse:
        """
        Suspend a request and run ``task_factory(token)`` on the pool.

        Returns immediately. The handle resolves with the task's result or
        error, or Timeout if the deadline comes first.
        """
        handle = self.suspend(
            timeout,
            request_id=request_id,
            transport=transport,
            timeout_handler=timeout_handler,
            label=label,
        )
        policy = DisconnectPolicy(on_disconnect or self.disconnect_policy)
        handle.on_disconnect(self._peer_gone_handler(handle.request_id, handle.token, policy, label))
        self._submit(handle.pending, task_factory, handle.token, label)
        logger.info("[%s] %s - Request is being processed asynchronously", handle.request_id, label)
        return handle

    # ------------------------------------------------------------------
    # Future surface
    # ------------------------------------------------------------------

    def begin_future(
        self,
        task_factory: TaskFactory,
        timeout: Optional[float] = None,
        *,
        fallback: Any = None,
        request_id: Optional[str] = None,
        label: str = "Reactive",
    ) -> ResponseFuture:
        """
        Run ``task_factory(token)`` on the pool and return a future for it.

        The future completes with the task's outcome, or Timeout(fallback)
        after ``timeout`` seconds.
        """
        pending = PendingRequest(request_id)
        future = ResponseFuture(pending, scheduler=self.scheduler)
        future.complete_after_timeout(fallback, self.timeout if timeout is None else timeout)
        self._track(pending, label)
        token = CancellationToken()
        peer_gone = self._peer_gone_handler(pending.request_id, token, self.disconnect_policy, label)
        future.on_cancel(lambda reason: peer_gone())
        self._submit(pending, task_factory, token, label)
        logger.info("[%s] %s - Request is being processed asynchronously", pending.request_id, label)
        return future

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def in_flight(self) -> int:
        """Requests begun by this controller that have not resolved yet."""
        with self._lock:
            return len(self._requests)

    def stats(self) -> ControllerStats:
        with self._lock:
            return ControllerStats(
                in_flight=len(self._requests),
                outcomes={kind.value: self._outcomes[kind] for kind in OutcomeKind},
            )

    def shutdown(self) -> None:
        """Cancel outstanding deadline timers. The pool is owned by the caller."""
        self.scheduler.shutdown()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _track(self, pending: PendingRequest, label: str) -> None:
        with self._lock:
            self._requests.add(pending)
        pending.register_observer(self._release_observer(pending, label))

    def _release_observer(self, pending: PendingRequest, label: str) -> CompletionObserver:
        def release(outcome: Outcome) -> None:
            with self._lock:
                self._requests.discard(pending)
                self._outcomes[outcome.kind] += 1
            elapsed = (pending.resolved_at or time.time()) - pending.created_at
            if isinstance(outcome, Failure):
                logger.error(
                    "[%s] %s - Request completed with error: %s (%.2fs)",
                    pending.request_id, label, outcome.error, elapsed,
                )
            elif isinstance(outcome, Success):
                logger.info("[%s] %s - Request completed (%.2fs)", pending.request_id, label, elapsed)
            else:
                logger.warning(
                    "[%s] %s - Request completed: %s (%.2fs)",
                    pending.request_id, label, describe(outcome), elapsed,
                )

        return release

    def _peer_gone_handler(
        self,
        request_id: str,
        token: CancellationToken,
        policy: DisconnectPolicy,
        label: str,
    ) -> DisconnectObserver:
        def on_peer_gone() -> None:
            if policy is DisconnectPolicy.CANCEL:
                logger.warning("[%s] %s - Client disconnected. Cancelling task.", request_id, label)
                token.cancel("client disconnected")
            else:
                logger.warning("[%s] %s - Client disconnected. Task left running.", request_id, label)

        return on_peer_gone

    def _submit(
        self,
        pending: PendingRequest,
        task_factory: TaskFactory,
        token: CancellationToken,
        label: str,
    ) -> Optional[Future]:
        request_id = pending.request_id

        def work() -> None:
            try:
                value = task_factory(token)
            except Exception as e:
                if pending.resolve(Failure(e)):
                    logger.error("[%s] %s - Error during task execution: %s", request_id, label, e)
                else:
                    logger.warning("[%s] %s - Task error discarded, request already resolved", request_id, label)
                return
            # Cheap short-circuit; resolve() below is the real check.
            if pending.is_open() and pending.resolve(Success(value)):
                logger.info("[%s] %s - Response sent successfully", request_id, label)
            else:
                logger.warning("[%s] %s - Response not sent, ignored", request_id, label)

        def on_dropped(future: Future) -> None:
            if future.cancelled():
                pending.resolve(Failure(PoolClosedError("Task dropped at pool shutdown", code="pool_closed")))

        try:
            future = self.pool.submit(work)
        except AsyncReqError as e:
            logger.warning("[%s] %s - Task rejected by worker pool: %s", request_id, label, e)
            pending.resolve(Failure(e))
            return None

        future.add_done_callback(on_dropped)
        return future


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "AsyncResponse",
    "ControllerStats",
    "LifecycleController",
    "TaskFactory",
    "TimeoutHandler",
]
