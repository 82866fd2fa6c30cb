"""
Terminal outcomes and lifecycle states.

An outcome is a tagged union: exactly one of Success, Failure, Timeout or
Cancelled is recorded per request. Producers build the variant they own and
hand it to PendingRequest.resolve(); consumers switch on ``outcome.kind``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class OutcomeKind(str, Enum):
    """Which producer won the resolution race."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class RequestState(str, Enum):
    """Pending request state. Only OPEN -> RESOLVED is allowed."""

    OPEN = "open"
    RESOLVED = "resolved"


class DisconnectPolicy(str, Enum):
    """
    What a peer disconnect (or downstream cancellation) does to the task.

    CANCEL: cancel the task's token so it stops at its next checkpoint.
    OBSERVE: log the disconnect and let the task run to completion.
    """

    CANCEL = "cancel"
    OBSERVE = "observe"


@dataclass(frozen=True)
class Success:
    """Task produced a value."""

    value: Any = None

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.SUCCESS


@dataclass(frozen=True)
class Failure:
    """Task raised. Interruption lands here too, as InterruptedSignal."""

    error: BaseException

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.FAILURE


@dataclass(frozen=True)
class Timeout:
    """Deadline elapsed first. ``fallback`` is the timeout handler's value, if any."""

    fallback: Any = None

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.TIMEOUT


@dataclass(frozen=True)
class Cancelled:
    """The handle itself was cancelled by its consumer."""

    reason: Optional[str] = None

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.CANCELLED


Outcome = Union[Success, Failure, Timeout, Cancelled]

# Variants a producer may pass to AsyncResponse.resume().
Result = Union[Success, Failure]


def describe(outcome: Outcome) -> str:
    """Short human-readable summary for log lines."""
    if isinstance(outcome, Failure):
        return f"{outcome.kind.value}: {type(outcome.error).__name__}: {outcome.error}"
    if isinstance(outcome, Cancelled) and outcome.reason:
        return f"{outcome.kind.value}: {outcome.reason}"
    return outcome.kind.value


__all__ = [
    "OutcomeKind",
    "RequestState",
    "DisconnectPolicy",
    "Success",
    "Failure",
    "Timeout",
    "Cancelled",
    "Outcome",
    "Result",
    "describe",
]
