"""
FastAPI application factory.

Usage:
    from asyncreq.server.app import create_app

    app = create_app()

Or run directly:
    uvicorn asyncreq.server:app --reload
"""

import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from asyncreq import __version__
from asyncreq.controller import LifecycleController
from asyncreq.exceptions import PeerGone
from asyncreq.pool import WorkerPool
from asyncreq.scheduler import TimeoutScheduler
from asyncreq.server.config import Settings, get_settings
from asyncreq.server.exceptions import CLIENT_CLOSED_REQUEST, APIError
from asyncreq.server.middleware import RequestTrackingMiddleware
from asyncreq.server.schemas import ErrorResponse, ErrorDetail
from asyncreq.server.routers import activity, health
from asyncreq.tasks import ActivityService, RandomFaults, UniformDuration


def build_activity_service(settings: Settings, rng: Optional[random.Random] = None) -> ActivityService:
    """Simulated task configured from settings."""
    rng = rng or random.Random()
    return ActivityService(
        faults=RandomFaults(p=settings.fault_probability, rng=rng),
        durations=UniformDuration(
            low=settings.min_duration_seconds,
            high=settings.max_duration_seconds,
            rng=rng,
        ),
        checkpoint_interval=settings.checkpoint_seconds,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    activity_service: Optional[ActivityService] = None,
    pool: Optional[WorkerPool] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration; read from the environment when omitted.
        activity_service: Task factory for the activity endpoints.
        pool: Worker pool; a fresh one sized from settings when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    pool = pool or WorkerPool(
        max_workers=settings.max_workers, max_pending=settings.max_pending
    )
    controller = LifecycleController(
        pool,
        TimeoutScheduler(),
        timeout=settings.timeout_seconds,
        disconnect_policy=settings.disconnect_policy,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        yield
        # Shutdown
        controller.shutdown()
        pool.shutdown(wait=False)

    app = FastAPI(
        title="asyncreq API",
        description="Asynchronous request lifecycle demo: suspended and future-based endpoints",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.controller = controller
    app.state.activity_service = activity_service or build_activity_service(settings)

    # Add middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Exception handlers
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Handle custom API errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(
                    code=exc.code,
                    message=exc.message,
                    request_id=exc.request_id
                    or getattr(request.state, "request_id", None),
                )
            ).model_dump(),
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )

    @app.exception_handler(PeerGone)
    async def peer_gone_handler(request: Request, exc: PeerGone) -> Response:
        """Client went away; the status only shows up in logs."""
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="internal_error",
                    message="An internal error occurred",
                    request_id=request_id,
                )
            ).model_dump(),
            headers={"X-Request-ID": request_id},
        )

    # Include routers
    app.include_router(health.router)
    app.include_router(activity.router)

    return app


# Default app instance for uvicorn
app = create_app()
