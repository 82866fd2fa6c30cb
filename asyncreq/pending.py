"""
Single-resolution slot for one in-flight client request.

Several producers race to finish the same request: the pool worker (result or
error), the deadline timer, and the consumer (explicit cancel). resolve() is an
atomic compare-and-set from OPEN to RESOLVED; exactly one caller wins and only
its outcome is kept. Everything else is a no-op returning False.

On the winning transition, in order:
    1. the attached ScheduledTimeout is cancelled
    2. completion observers run once each, in registration order
    3. the outcome is sent to the transport (skipped if the peer is gone)

Observers registered after resolution are replayed immediately with the stored
outcome on the registering thread. The same rule applies to disconnect
observers once the peer is gone.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, List, Optional

from asyncreq.models import Outcome, RequestState, describe
from asyncreq.scheduler import ScheduledTimeout
from asyncreq.transport import Transport


logger = logging.getLogger(__name__)

CompletionObserver = Callable[[Outcome], None]
DisconnectObserver = Callable[[], None]


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req-{uuid.uuid4().hex[:16]}"


class PendingRequest:
    """One client request awaiting its terminal outcome."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        *,
        transport: Optional[Transport] = None,
    ) -> None:
        self.request_id = request_id or generate_request_id()
        self.created_at = time.time()
        self.resolved_at: Optional[float] = None

        self._lock = threading.Lock()
        self._resolved_event = threading.Event()
        self._state = RequestState.OPEN
        self._outcome: Optional[Outcome] = None
        self._transport = transport
        self._timeout: Optional[ScheduledTimeout] = None
        self._observers: List[CompletionObserver] = []
        self._disconnect_observers: List[DisconnectObserver] = []
        self._disconnected = False
        self._transmitted = False

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def outcome(self) -> Optional[Outcome]:
        return self._outcome

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    @property
    def transmitted(self) -> bool:
        """True once the outcome was handed to the transport."""
        return self._transmitted

    def is_open(self) -> bool:
        """Best-effort check. The authoritative check is resolve() itself."""
        return self._state is RequestState.OPEN

    def wait(self, timeout: Optional[float] = None) -> Optional[Outcome]:
        """Block until resolved (or ``timeout``). Returns the outcome or None."""
        self._resolved_event.wait(timeout)
        return self._outcome

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, outcome: Outcome) -> bool:
        """
        Attempt the OPEN -> RESOLVED transition.

        Returns True if this call won. Losing calls leave the stored outcome,
        observers and transport untouched.
        """
        with self._lock:
            if self._state is not RequestState.OPEN:
                return False
            self._state = RequestState.RESOLVED
            self._outcome = outcome
            self.resolved_at = time.time()
            timeout, self._timeout = self._timeout, None
            observers, self._observers = self._observers, []
            self._disconnect_observers = []
            transport = None if self._disconnected else self._transport
            self._transport = None
            self._transmitted = transport is not None

        if timeout is not None:
            timeout.cancel()

        for observer in observers:
            self._notify(observer, outcome)

        if transport is not None:
            try:
                transport.send(outcome)
            except Exception:
                logger.exception("[%s] Transport failed to send outcome", self.request_id)

        self._resolved_event.set()
        logger.debug("[%s] Resolved: %s", self.request_id, describe(outcome))
        return True

    # ------------------------------------------------------------------
    # Observers and timeout
    # ------------------------------------------------------------------

    def register_observer(self, observer: CompletionObserver) -> None:
        """Run ``observer(outcome)`` once after resolution (replayed if already resolved)."""
        with self._lock:
            if self._state is RequestState.OPEN:
                self._observers.append(observer)
                return
            outcome = self._outcome
        assert outcome is not None
        self._notify(observer, outcome)

    def register_disconnect_observer(self, observer: DisconnectObserver) -> None:
        """Run ``observer()`` once if the peer disconnects while the request is open."""
        with self._lock:
            if self._state is RequestState.OPEN and not self._disconnected:
                self._disconnect_observers.append(observer)
                return
            replay = self._disconnected
        if replay:
            self._notify_disconnect(observer)

    def attach_timeout(self, timeout: ScheduledTimeout) -> None:
        """Tie a deadline timer to this request, replacing any previous one."""
        stale: Optional[ScheduledTimeout]
        with self._lock:
            if self._state is RequestState.OPEN and not self._disconnected:
                stale, self._timeout = self._timeout, timeout
            else:
                stale = timeout
        if stale is not None:
            stale.cancel()

    def notify_disconnect(self) -> bool:
        """
        Mark the peer as gone.

        Detaches the transport and releases the deadline timer; the request
        stays open until a producer resolves it, but nothing is transmitted.
        Returns False if already disconnected or resolved.
        """
        with self._lock:
            if self._state is not RequestState.OPEN or self._disconnected:
                return False
            self._disconnected = True
            self._transport = None
            timeout, self._timeout = self._timeout, None
            observers, self._disconnect_observers = self._disconnect_observers, []

        if timeout is not None:
            timeout.cancel()

        logger.info("[%s] Peer disconnected", self.request_id)
        for observer in observers:
            self._notify_disconnect(observer)
        return True

    def _notify(self, observer: CompletionObserver, outcome: Outcome) -> None:
        try:
            observer(outcome)
        except Exception:
            logger.exception("[%s] Completion observer failed", self.request_id)

    def _notify_disconnect(self, observer: DisconnectObserver) -> None:
        try:
            observer()
        except Exception:
            logger.exception("[%s] Disconnect observer failed", self.request_id)

    def __repr__(self) -> str:
        detail = describe(self._outcome) if self._outcome is not None else "open"
        return f"PendingRequest({self.request_id}, {detail})"


__all__ = ["PendingRequest", "generate_request_id", "CompletionObserver", "DisconnectObserver"]
