"""
Cancellable simulated work.

A TaskRun performs ``duration`` seconds of work as a sequence of checkpoints
and consults its CancellationToken at each one, so a cancel request stops it
within one checkpoint interval. Fault injection and duration sampling are
explicit strategies passed in by the caller; nothing here reads global RNG
state, which keeps runs reproducible under a seeded ``random.Random``.

Usage:
    service = ActivityService(
        faults=RandomFaults(p=0.5),
        durations=UniformDuration(low=5, high=11),
    )
    handle = controller.begin_async(service)
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from asyncreq.cancellation import CancellationToken
from asyncreq.exceptions import InterruptedSignal, TaskError


logger = logging.getLogger(__name__)

DEFAULT_ACTIVITIES: List[str] = ["Running", "Swimming", "Cycling"]


# =============================================================================
# Strategies
# =============================================================================


class FaultInjector(Protocol):
    """Decides whether a run fails before doing any work."""

    def should_fail(self) -> bool: ...


class DurationSampler(Protocol):
    """Picks how long a run takes, in seconds."""

    def sample(self) -> float: ...


@dataclass(frozen=True)
class RandomFaults:
    """
    Fail with a given probability.

    Example:
        RandomFaults(p=0.5, rng=random.Random(7))  # coin flip, reproducible
    """

    p: float = 0.5
    rng: random.Random = field(default_factory=random.Random)

    def should_fail(self) -> bool:
        return self.rng.random() < self.p


@dataclass(frozen=True)
class NoFaults:
    """Never fail."""

    def should_fail(self) -> bool:
        return False


@dataclass(frozen=True)
class AlwaysFail:
    """Always fail. Useful for deterministic error-path tests."""

    def should_fail(self) -> bool:
        return True


@dataclass(frozen=True)
class UniformDuration:
    """
    Whole seconds drawn uniformly from [low, high], both inclusive.

    Example:
        UniformDuration(low=5, high=11)  # 5, 6, ... or 11
    """

    low: int = 5
    high: int = 11
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if self.low < 0 or self.high < self.low:
            raise ValueError("require 0 <= low <= high")

    def sample(self) -> float:
        return float(self.rng.randint(self.low, self.high))


@dataclass(frozen=True)
class FixedDuration:
    """Always the same duration."""

    seconds: float

    def sample(self) -> float:
        return self.seconds


# =============================================================================
# TaskRun
# =============================================================================


class TaskRun:
    """
    One execution of the long-running task.

    ``duration`` is in checkpoint units of ``checkpoint_interval`` seconds
    each: duration=8 with checkpoint_interval=1.0 is eight one-second steps.
    """

    def __init__(
        self,
        duration: float,
        token: CancellationToken,
        *,
        checkpoint_interval: float = 1.0,
    ) -> None:
        if duration < 0:
            raise ValueError("duration must be >= 0")
        if checkpoint_interval <= 0:
            raise ValueError("checkpoint_interval must be > 0")
        self.duration = duration
        self.token = token
        self.checkpoint_interval = checkpoint_interval
        self.checkpoints = 0
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None

    @property
    def total_checkpoints(self) -> int:
        return int(math.ceil(self.duration))

    def run(self) -> None:
        """
        Do the work.

        Raises:
            InterruptedSignal: The token was cancelled. Raised no later than one
                checkpoint interval after cancel().
        """
        self.started_at = time.monotonic()
        logger.info(
            "Long-running task started. Duration: %s checkpoints of %.3fs",
            self.total_checkpoints, self.checkpoint_interval,
        )
        try:
            self.token.raise_if_cancelled()
            for _ in range(self.total_checkpoints):
                if self.token.wait(self.checkpoint_interval):
                    logger.error("Long-running task interrupted: %s", self.token.reason)
                    raise InterruptedSignal(reason=self.token.reason)
                self.checkpoints += 1
        finally:
            self.finished_at = time.monotonic()


# =============================================================================
# ActivityService
# =============================================================================


class ActivityService:
    """
    Task factory for the activity endpoints.

    Calling the service with a token runs one TaskRun and returns the payload.
    The fault check comes first, so a faulty run fails immediately.
    """

    def __init__(
        self,
        *,
        faults: Optional[FaultInjector] = None,
        durations: Optional[DurationSampler] = None,
        checkpoint_interval: float = 1.0,
        payload: Any = None,
    ) -> None:
        self.faults: FaultInjector = faults if faults is not None else RandomFaults()
        self.durations: DurationSampler = durations if durations is not None else UniformDuration()
        self.checkpoint_interval = checkpoint_interval
        self.payload = payload if payload is not None else list(DEFAULT_ACTIVITIES)

    def __call__(self, token: CancellationToken) -> Any:
        if self.faults.should_fail():
            raise TaskError("An error occurred", code="task_error")
        run = TaskRun(
            self.durations.sample(),
            token,
            checkpoint_interval=self.checkpoint_interval,
        )
        run.run()
        return self.payload


__all__ = [
    "DEFAULT_ACTIVITIES",
    "FaultInjector",
    "DurationSampler",
    "RandomFaults",
    "NoFaults",
    "AlwaysFail",
    "UniformDuration",
    "FixedDuration",
    "TaskRun",
    "ActivityService",
]
