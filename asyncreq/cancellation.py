"""
Cooperative cancellation token.

Work running on a pool thread cannot be preempted. Instead it receives a token
and checks it at fixed checkpoints; whoever wants the work to stop (a peer
disconnect, an explicit cancel) flips the token and the work raises
InterruptedSignal at its next checkpoint.

Usage:
    token = CancellationToken()

    def work(token: CancellationToken) -> None:
        for _ in range(10):
            if token.wait(1.0):
                raise InterruptedSignal(reason=token.reason)

    token.cancel("client disconnected")
"""

from __future__ import annotations

import threading
from typing import Optional

from asyncreq.exceptions import InterruptedSignal


class CancellationToken:
    """
    Thread-safe cancellation flag.

    Backed by threading.Event so a worker blocked in wait() wakes as soon as
    cancel() is called from any other thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Request cancellation.

        Returns True only for the call that flipped the flag; later calls keep
        the first reason.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        """Raise InterruptedSignal if cancellation was requested."""
        if self._event.is_set():
            raise InterruptedSignal(reason=self._reason)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if cancelled."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = f"cancelled={self._reason!r}" if self.is_cancelled else "active"
        return f"CancellationToken({state})"


__all__ = ["CancellationToken"]
