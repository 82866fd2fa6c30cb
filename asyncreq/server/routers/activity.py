"""
Activity endpoints: one long-running task per request, two surfaces.

GET /activity/suspended - suspend-and-resume handle, resolved by the controller
GET /activity/reactive  - future returned by the controller

Both return 200 with the activity list, 500 if the task fails, or 503 if the
deadline elapses first. A client that disconnects gets nothing (logged as
499). The event loop never waits on the task itself: the endpoint awaits
an asyncio future that the winning producer completes.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from asyncreq.controller import AsyncResponse, LifecycleController
from asyncreq.exceptions import PeerGone
from asyncreq.models import Outcome
from asyncreq.server.config import Settings
from asyncreq.server.middleware import get_request_id
from asyncreq.server.responses import to_response
from asyncreq.tasks import ActivityService
from asyncreq.transport import AsyncioTransport


router = APIRouter(prefix="/activity", tags=["activity"])


# =============================================================================
# Dependencies
# =============================================================================


def get_controller(request: Request) -> LifecycleController:
    return request.app.state.controller


def get_service(request: Request) -> ActivityService:
    return request.app.state.activity_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# =============================================================================
# Disconnect-aware wait
# =============================================================================


async def await_outcome(
    request: Request,
    waiter: asyncio.Future,
    on_disconnect: Callable[[], object],
    poll_interval: float,
) -> Outcome:
    """
    Wait for the outcome while watching the connection.

    Raises:
        PeerGone: The client disconnected first. ``on_disconnect`` has
            already been called.
    """
    try:
        while True:
            done, _ = await asyncio.wait({waiter}, timeout=poll_interval)
            if done:
                return waiter.result()
            if await request.is_disconnected():
                on_disconnect()
                raise PeerGone(details={"request_id": get_request_id()})
    except asyncio.CancelledError:
        # Server cancelled the handler, which means the connection is gone
        on_disconnect()
        raise


def _timed_out_message(handle: AsyncResponse) -> str:
    return f"{handle.label} - Operation timed out"


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/suspended")
async def get_activities_suspended(
    request: Request,
    controller: LifecycleController = Depends(get_controller),
    service: ActivityService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """
    Suspend the request and resume it from the worker pool.

    The deadline is ASYNCREQ_TIMEOUT_SECONDS. A client disconnect is reported
    to the handle; with the cancel policy the task stops at its next
    checkpoint and no response is sent.
    """
    request_id = getattr(request.state, "request_id", None)
    transport = AsyncioTransport()
    handle = controller.begin_async(
        service,
        settings.timeout_seconds,
        transport=transport,
        request_id=request_id,
        timeout_handler=_timed_out_message,
        label="Suspended",
    )

    outcome = await await_outcome(
        request, transport.future, handle.disconnect, settings.disconnect_poll_seconds
    )
    return to_response(outcome, request_id=handle.request_id)


@router.get("/reactive")
async def get_activities_reactive(
    request: Request,
    controller: LifecycleController = Depends(get_controller),
    service: ActivityService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """
    Return the task's future and send whatever lands in it.

    The deadline is ASYNCREQ_FUTURE_TIMEOUT_SECONDS. A client disconnect
    cancels the future; the disconnect policy decides whether the task stops.
    """
    request_id = getattr(request.state, "request_id", None)
    future = controller.begin_future(
        service,
        settings.future_timeout_seconds,
        fallback="Reactive - Operation timed out",
        request_id=request_id,
        label="Reactive",
    )

    outcome = await await_outcome(
        request,
        future.to_asyncio(),
        lambda: future.cancel("client disconnected"),
        settings.disconnect_poll_seconds,
    )
    return to_response(outcome, request_id=future.request_id)
