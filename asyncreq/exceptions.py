"""
Typed exceptions for asyncreq.

Provides structured error handling with:
- AsyncReqError: Base exception for all asyncreq errors
- TaskError: Simulated or business failure raised by a task
- InterruptedSignal: Cooperative cancellation observed mid-task
- DeadlineExceeded: A request's deadline elapsed before it resolved
- PeerGone: The client disconnected before a response could be sent
- PoolCapacityError / PoolClosedError: Worker pool refused a submission

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AsyncReqError(Exception):
    """Base exception for all asyncreq errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class TaskError(AsyncReqError):
    """Failure raised by the work itself.

    Raised when:
    - The fault injector decides the run should fail
    - Task code signals a business-level error

    Surfaces to the client as a 500-class response.
    """

    pass


class InterruptedSignal(AsyncReqError):
    """Cooperative cancellation observed at a task checkpoint.

    Attributes:
        reason: Why the token was cancelled (e.g. "client disconnected")
    """

    def __init__(
        self,
        message: str = "Task interrupted",
        *,
        reason: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if reason:
            details["reason"] = reason

        self.reason = reason

        super().__init__(message, code=code or "interrupted", details=details)


class DeadlineExceeded(AsyncReqError):
    """A request's deadline elapsed before any other outcome.

    Attributes:
        timeout: The configured deadline in seconds
    """

    def __init__(
        self,
        message: str = "Operation timed out",
        *,
        timeout: Optional[float] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if timeout is not None:
            details["timeout"] = timeout

        self.timeout = timeout

        super().__init__(message, code=code or "deadline_exceeded", details=details)


class PeerGone(AsyncReqError):
    """The client went away; there is nobody left to send a response to."""

    def __init__(
        self,
        message: str = "Client disconnected",
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "peer_gone", details=details)


class PoolCapacityError(AsyncReqError):
    """Bounded worker pool has no room for another task.

    Attributes:
        max_pending: The configured admission bound
    """

    def __init__(
        self,
        message: str,
        *,
        max_pending: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if max_pending is not None:
            details["max_pending"] = max_pending

        self.max_pending = max_pending

        super().__init__(message, code=code or "capacity_exceeded", details=details)


class PoolClosedError(AsyncReqError):
    """Submission after the worker pool was shut down."""

    pass


__all__ = [
    "AsyncReqError",
    "TaskError",
    "InterruptedSignal",
    "DeadlineExceeded",
    "PeerGone",
    "PoolCapacityError",
    "PoolClosedError",
]
