"""
HTTP exception types for the API server.
"""

from typing import Optional


class APIError(Exception):
    """Base exception for API errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, request_id: Optional[str] = None) -> None:
        self.message = message
        self.request_id = request_id
        super().__init__(message)


class TaskFailedError(APIError):
    """The task raised before the deadline."""

    status_code = 500
    code = "task_failed"


class ServiceUnavailableError(APIError):
    """Deadline elapsed, or the request was cancelled, before a result."""

    status_code = 503
    code = "service_unavailable"


class CapacityExceededError(APIError):
    """Bounded worker pool refused the task."""

    status_code = 503
    code = "capacity_exceeded"


# Nobody receives this; the peer is already gone.
CLIENT_CLOSED_REQUEST = 499
