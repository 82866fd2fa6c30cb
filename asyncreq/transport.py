"""
Transport boundary: where a resolved outcome leaves the core.

PendingRequest calls ``transport.send(outcome)`` at most once, from whichever
thread won the resolution race (a pool worker or a timer). The HTTP layer
awaits the outcome on its event loop through AsyncioTransport.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from asyncreq.models import Outcome


class Transport(Protocol):
    """Receives the single terminal outcome of a request."""

    def send(self, outcome: Outcome) -> None: ...


class AsyncioTransport:
    """
    Bridges a worker/timer thread to an asyncio.Future.

    Must be created on (or given) the loop that will await it.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()

    @property
    def future(self) -> asyncio.Future:
        return self._future

    def send(self, outcome: Outcome) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._set, outcome)

    def _set(self, outcome: Outcome) -> None:
        if not self._future.done():
            self._future.set_result(outcome)

    async def wait(self) -> Outcome:
        return await self._future


__all__ = ["Transport", "AsyncioTransport"]
