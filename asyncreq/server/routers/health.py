"""
Health check endpoint.

Provides basic health status plus worker pool and lifecycle counters.
"""
from dataclasses import asdict

from fastapi import APIRouter, Request

from asyncreq import __version__
from asyncreq.server.schemas import HealthResponse, LifecycleInfo, PoolStatsInfo


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Health check endpoint.

    Reports "degraded" while a bounded pool is full, so load balancers can
    steer new requests elsewhere.
    """
    controller = request.app.state.controller
    pool_stats = controller.pool.stats()
    controller_stats = controller.stats()

    full = (
        pool_stats.max_pending is not None
        and pool_stats.active + pool_stats.queued >= pool_stats.max_pending
    )
    return HealthResponse(
        status="degraded" if full else "healthy",
        version=__version__,
        pool=PoolStatsInfo(**asdict(pool_stats)),
        lifecycle=LifecycleInfo(
            in_flight=controller_stats.in_flight,
            pending_timers=controller.scheduler.pending(),
            outcomes=controller_stats.outcomes,
        ),
    )
