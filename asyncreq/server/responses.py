"""
Outcome to HTTP mapping.

    Success    -> 200 with the payload
    Failure    -> 500 task_failed (503 capacity_exceeded for pool rejection)
    Timeout    -> 503 service_unavailable, fallback text as the message
    Cancelled  -> 503 service_unavailable
"""

from typing import Optional

from fastapi.responses import JSONResponse

from asyncreq.exceptions import PoolCapacityError, PoolClosedError
from asyncreq.models import Cancelled, Failure, Outcome, Success, Timeout
from asyncreq.server.exceptions import (
    CapacityExceededError,
    ServiceUnavailableError,
    TaskFailedError,
)


def to_response(outcome: Outcome, request_id: Optional[str] = None) -> JSONResponse:
    """
    Return the 200 response for a Success; raise the matching APIError otherwise.

    Raised errors are rendered by the app's APIError handler.
    """
    if isinstance(outcome, Success):
        return JSONResponse(content=outcome.value)

    if isinstance(outcome, Failure):
        if isinstance(outcome.error, (PoolCapacityError, PoolClosedError)):
            raise CapacityExceededError(str(outcome.error), request_id=request_id)
        raise TaskFailedError(str(outcome.error) or "Task failed", request_id=request_id)

    if isinstance(outcome, Timeout):
        message = outcome.fallback if isinstance(outcome.fallback, str) else "Operation timed out"
        raise ServiceUnavailableError(message, request_id=request_id)

    if isinstance(outcome, Cancelled):
        raise ServiceUnavailableError(
            f"Request cancelled: {outcome.reason or 'cancelled'}", request_id=request_id
        )

    raise TypeError(f"Unknown outcome: {outcome!r}")
