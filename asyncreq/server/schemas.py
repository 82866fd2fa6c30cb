"""
Pydantic models for API request/response schemas.
"""
from typing import Dict, Optional
from pydantic import BaseModel, Field


# =============================================================================
# Health Endpoint Schemas
# =============================================================================


class PoolStatsInfo(BaseModel):
    """Worker pool snapshot."""

    max_workers: int = Field(..., description="Worker threads")
    max_pending: Optional[int] = Field(None, description="Admission bound, null if unbounded")
    active: int = Field(..., description="Tasks executing")
    queued: int = Field(..., description="Tasks accepted but not started")
    submitted: int = Field(..., description="Total accepted submissions")
    completed: int = Field(..., description="Total tasks that returned")
    failed: int = Field(
        ...,
        description="Total tasks whose exception escaped to the pool. Task failures "
        "caught by the controller are counted in lifecycle.outcomes instead",
    )
    rejected: int = Field(..., description="Total submissions refused for capacity")


class LifecycleInfo(BaseModel):
    """Controller snapshot."""

    in_flight: int = Field(..., description="Requests awaiting an outcome")
    pending_timers: int = Field(..., description="Deadline timers not yet fired or cancelled")
    outcomes: Dict[str, int] = Field(..., description="Resolved requests by outcome kind")


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")
    pool: PoolStatsInfo
    lifecycle: LifecycleInfo


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorDetail(BaseModel):
    """Error detail."""

    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
