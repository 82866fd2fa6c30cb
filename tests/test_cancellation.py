"""
Tests for cooperative cancellation and the cancellable task.

These tests verify:
1. CancellationToken keeps the first reason and wakes waiters immediately
2. TaskRun stops within one checkpoint interval of cancel()
3. Fault and duration strategies are explicit and reproducible
"""
from __future__ import annotations

import random
import threading
import time

import pytest

from asyncreq.cancellation import CancellationToken
from asyncreq.exceptions import InterruptedSignal, TaskError
from asyncreq.tasks import (
    DEFAULT_ACTIVITIES,
    ActivityService,
    AlwaysFail,
    FixedDuration,
    NoFaults,
    RandomFaults,
    TaskRun,
    UniformDuration,
)


# =============================================================================
# CancellationToken
# =============================================================================

class TestCancellationToken:

    def test_first_cancel_wins(self):
        token = CancellationToken()
        assert not token.is_cancelled
        assert token.cancel("client disconnected") is True
        assert token.cancel("something else") is False
        assert token.is_cancelled
        assert token.reason == "client disconnected"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel("stop")
        with pytest.raises(InterruptedSignal) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "stop"
        assert exc_info.value.code == "interrupted"

    def test_wait_wakes_on_cancel(self):
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()

        start = time.monotonic()
        assert token.wait(5.0) is True
        assert time.monotonic() - start < 1.0

    def test_wait_times_out(self):
        token = CancellationToken()
        assert token.wait(0.01) is False


# =============================================================================
# TaskRun
# =============================================================================

class TestTaskRun:

    def test_runs_all_checkpoints(self):
        run = TaskRun(3, CancellationToken(), checkpoint_interval=0.01)
        run.run()
        assert run.checkpoints == 3
        assert run.total_checkpoints == 3
        assert run.finished_at >= run.started_at

    def test_fractional_duration_rounds_up(self):
        run = TaskRun(2.5, CancellationToken(), checkpoint_interval=0.01)
        assert run.total_checkpoints == 3

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel("early")
        run = TaskRun(5, token, checkpoint_interval=0.01)

        with pytest.raises(InterruptedSignal):
            run.run()
        assert run.checkpoints == 0

    def test_cancel_stops_within_one_checkpoint(self):
        """Cancelling mid-run ends the task no later than one interval later."""
        interval = 0.1
        token = CancellationToken()
        run = TaskRun(100, token, checkpoint_interval=interval)
        errors = []

        def target():
            try:
                run.run()
            except InterruptedSignal as e:
                errors.append(e)

        thread = threading.Thread(target=target)
        thread.start()
        time.sleep(0.25)

        cancelled_at = time.monotonic()
        token.cancel("client disconnected")
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert errors[0].reason == "client disconnected"
        assert run.finished_at - cancelled_at <= interval + 0.1
        assert run.checkpoints < 100

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            TaskRun(-1, CancellationToken())
        with pytest.raises(ValueError):
            TaskRun(1, CancellationToken(), checkpoint_interval=0)


# =============================================================================
# Strategies and ActivityService
# =============================================================================

class TestStrategies:

    def test_random_faults_extremes(self):
        never = RandomFaults(p=0.0, rng=random.Random(1))
        always = RandomFaults(p=1.0, rng=random.Random(1))
        assert not any(never.should_fail() for _ in range(100))
        assert all(always.should_fail() for _ in range(100))

    def test_random_faults_reproducible(self):
        a = RandomFaults(p=0.5, rng=random.Random(42))
        b = RandomFaults(p=0.5, rng=random.Random(42))
        assert [a.should_fail() for _ in range(50)] == [b.should_fail() for _ in range(50)]

    def test_uniform_duration_inclusive_bounds(self):
        durations = UniformDuration(low=5, high=11, rng=random.Random(7))
        samples = {durations.sample() for _ in range(500)}
        assert samples == {5.0, 6.0, 7.0, 8.0, 9.0, 10.0, 11.0}

    def test_uniform_duration_rejects_bad_range(self):
        with pytest.raises(ValueError):
            UniformDuration(low=5, high=4)

    def test_fixed_duration(self):
        assert FixedDuration(3).sample() == 3


class TestActivityService:

    def test_returns_default_activities(self):
        service = ActivityService(
            faults=NoFaults(), durations=FixedDuration(1), checkpoint_interval=0.01
        )
        assert service(CancellationToken()) == DEFAULT_ACTIVITIES

    def test_custom_payload(self):
        service = ActivityService(
            faults=NoFaults(),
            durations=FixedDuration(0),
            payload={"activities": ["Rowing"]},
        )
        assert service(CancellationToken()) == {"activities": ["Rowing"]}

    def test_fault_fails_immediately(self):
        service = ActivityService(faults=AlwaysFail(), durations=FixedDuration(1000))

        start = time.monotonic()
        with pytest.raises(TaskError) as exc_info:
            service(CancellationToken())
        assert time.monotonic() - start < 1.0
        assert str(exc_info.value) == "An error occurred"
        assert exc_info.value.code == "task_error"

    def test_interrupted_service(self):
        token = CancellationToken()
        token.cancel("client disconnected")
        service = ActivityService(faults=NoFaults(), durations=FixedDuration(10))
        with pytest.raises(InterruptedSignal):
            service(token)
