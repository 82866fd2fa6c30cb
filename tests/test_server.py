"""
HTTP API Tests

Validates the activity endpoints end to end:
- 200 with the activity list when the task finishes before the deadline
- 500 when the task fails, 503 when the deadline elapses first
- 503 capacity_exceeded when a bounded pool is full
- Client disconnect ends the request with 499 and stops the task, also
  when driven through the full ASGI stack
- Request IDs propagate through X-Request-ID

Tasks use fixed durations and tiny checkpoint intervals so every request
finishes in well under a second.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport

from asyncreq.controller import LifecycleController
from asyncreq.exceptions import InterruptedSignal, PeerGone
from asyncreq.models import Failure
from asyncreq.pool import WorkerPool
from asyncreq.server import create_app
from asyncreq.server.config import Settings, get_settings
from asyncreq.server.routers.activity import await_outcome
from asyncreq.tasks import (
    DEFAULT_ACTIVITIES,
    ActivityService,
    AlwaysFail,
    FixedDuration,
    NoFaults,
)
from asyncreq.transport import AsyncioTransport


INTERVAL = 0.01


def service(duration: float, *, fail: bool = False) -> ActivityService:
    return ActivityService(
        faults=AlwaysFail() if fail else NoFaults(),
        durations=FixedDuration(duration),
        checkpoint_interval=INTERVAL,
    )


def make_settings(**overrides) -> Settings:
    settings = Settings()
    settings.disconnect_poll_seconds = 0.05
    for name, value in overrides.items():
        setattr(settings, name, value)
    return settings


# =============================================================================
# Configuration
# =============================================================================


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("ASYNCREQ_TIMEOUT_SECONDS", "ASYNCREQ_MAX_PENDING", "ASYNCREQ_DISCONNECT_POLICY"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert settings.timeout_seconds == 8.0
        assert settings.future_timeout_seconds == 8.0
        assert settings.max_pending is None
        assert not settings.bounded
        assert settings.disconnect_policy.value == "cancel"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("ASYNCREQ_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("ASYNCREQ_MAX_PENDING", "10")
        monkeypatch.setenv("ASYNCREQ_DISCONNECT_POLICY", "OBSERVE")
        settings = get_settings()
        assert settings.timeout_seconds == 2.5
        assert settings.max_pending == 10
        assert settings.bounded
        assert settings.disconnect_policy.value == "observe"

    def test_cached(self):
        assert get_settings() is get_settings()


# =============================================================================
# Health
# =============================================================================


class TestHealth:

    def test_health(self):
        app = create_app(make_settings(max_workers=7), activity_service=service(1))
        with TestClient(app) as client:
            resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["pool"]["max_workers"] == 7
        assert data["pool"]["max_pending"] is None
        assert data["lifecycle"]["in_flight"] == 0
        assert set(data["lifecycle"]["outcomes"]) == {"success", "failure", "timeout", "cancelled"}

    def test_task_failures_count_as_outcomes_not_pool_errors(self):
        app = create_app(make_settings(), activity_service=service(1, fail=True))
        with TestClient(app) as client:
            assert client.get("/activity/suspended").status_code == 500
            data = client.get("/health").json()

        assert data["lifecycle"]["outcomes"]["failure"] == 1
        assert data["pool"]["failed"] == 0


# =============================================================================
# Activity endpoints
# =============================================================================


@pytest.mark.parametrize("path", ["/activity/suspended", "/activity/reactive"])
class TestActivityEndpoints:

    def test_success(self, path):
        app = create_app(make_settings(), activity_service=service(2))
        with TestClient(app) as client:
            resp = client.get(path)

        assert resp.status_code == 200
        assert resp.json() == DEFAULT_ACTIVITIES
        assert resp.headers["X-Request-ID"].startswith("req-")

    def test_failure(self, path):
        app = create_app(make_settings(), activity_service=service(2, fail=True))
        with TestClient(app) as client:
            resp = client.get(path)

        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "task_failed"
        assert error["message"] == "An error occurred"

    def test_timeout(self, path):
        app = create_app(
            make_settings(timeout_seconds=0.1, future_timeout_seconds=0.1),
            activity_service=service(100),
        )
        with TestClient(app) as client:
            resp = client.get(path)
            health = client.get("/health").json()

        assert resp.status_code == 503
        error = resp.json()["error"]
        assert error["code"] == "service_unavailable"
        label = "Suspended" if path.endswith("suspended") else "Reactive"
        assert error["message"] == f"{label} - Operation timed out"
        assert health["lifecycle"]["outcomes"]["timeout"] == 1

    def test_request_id_propagates(self, path):
        app = create_app(make_settings(), activity_service=service(1))
        with TestClient(app) as client:
            resp = client.get(path, headers={"X-Request-ID": "req-from-client"})
        assert resp.headers["X-Request-ID"] == "req-from-client"

        failing = create_app(make_settings(), activity_service=service(1, fail=True))
        with TestClient(failing) as client:
            resp = client.get(path, headers={"X-Request-ID": "req-failing"})
        assert resp.headers["X-Request-ID"] == "req-failing"
        assert resp.json()["error"]["request_id"] == "req-failing"

    def test_capacity_exceeded(self, path):
        pool = WorkerPool(max_workers=1, max_pending=1)
        release = threading.Event()
        pool.submit(release.wait, 5.0)
        app = create_app(make_settings(max_pending=1), activity_service=service(1), pool=pool)
        try:
            with TestClient(app) as client:
                resp = client.get(path)
                health = client.get("/health").json()
        finally:
            release.set()

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "capacity_exceeded"
        assert health["status"] == "degraded"
        assert health["pool"]["rejected"] == 1


class TestConcurrentRequests:

    @pytest.mark.anyio
    async def test_concurrent_requests_do_not_block_each_other(self):
        """20 requests of ~0.2s each finish together, not one after another."""
        app = create_app(make_settings(), activity_service=service(20))
        start = time.monotonic()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test", timeout=10.0) as client:
            responses = await asyncio.gather(
                *[client.get("/activity/suspended") for _ in range(10)],
                *[client.get("/activity/reactive") for _ in range(10)],
            )
        elapsed = time.monotonic() - start

        assert [r.status_code for r in responses] == [200] * 20
        assert len({r.headers["X-Request-ID"] for r in responses}) == 20
        assert elapsed < 3.0


# =============================================================================
# Disconnect handling
# =============================================================================


class FakeRequest:
    """Stands in for a Starlette request whose client hangs up."""

    def __init__(self, disconnect_after: int) -> None:
        self.calls = 0
        self.disconnect_after = disconnect_after
        self.state = SimpleNamespace(request_id="req-fake")

    async def is_disconnected(self) -> bool:
        self.calls += 1
        return self.calls >= self.disconnect_after


class TestDisconnect:

    def setup_method(self):
        self.pool = WorkerPool(max_workers=4)
        self.controller = LifecycleController(self.pool, timeout=5.0)

    def teardown_method(self):
        self.controller.shutdown()
        self.pool.shutdown(wait=False)

    @pytest.mark.anyio
    async def test_suspended_disconnect_interrupts_task(self):
        transport = AsyncioTransport()
        handle = self.controller.begin_async(service(500), transport=transport)

        with pytest.raises(PeerGone):
            await await_outcome(FakeRequest(3), transport.future, handle.disconnect, 0.01)

        assert handle.pending.disconnected
        outcome = await asyncio.to_thread(handle.wait, 2.0)
        assert isinstance(outcome, Failure)
        assert isinstance(outcome.error, InterruptedSignal)
        await asyncio.sleep(0.05)
        assert not transport.future.done()

    @pytest.mark.anyio
    async def test_reactive_disconnect_cancels_future(self):
        future = self.controller.begin_future(service(500))

        with pytest.raises(PeerGone):
            await await_outcome(
                FakeRequest(2),
                future.to_asyncio(),
                lambda: future.cancel("client disconnected"),
                0.01,
            )

        assert future.cancelled()
        assert self.controller.in_flight() == 0

    @pytest.mark.anyio
    async def test_outcome_before_disconnect(self):
        transport = AsyncioTransport()
        handle = self.controller.begin_async(service(1), transport=transport)

        outcome = await await_outcome(FakeRequest(1000), transport.future, handle.disconnect, 0.01)

        assert outcome == handle.outcome
        assert await transport.wait() == outcome
        assert not handle.pending.disconnected

    def test_peer_gone_maps_to_499(self, caplog):
        caplog.set_level(logging.INFO, logger="asyncreq.server.middleware")
        app = create_app(make_settings(), activity_service=service(1))

        @app.get("/gone")
        async def gone():
            raise PeerGone()

        with TestClient(app) as client:
            resp = client.get("/gone")

        assert resp.status_code == 499
        assert resp.content == b""
        assert "-> 499 client closed request" in caplog.text


# =============================================================================
# Disconnect through the full ASGI stack
# =============================================================================


class HangingUpClient:
    """
    ASGI receive channel of a client that hangs up ``after`` seconds in.

    Like a real server, it answers ``http.disconnect`` without suspending
    once the client is gone, and blocks on the next message until then.
    """

    def __init__(self, after: float) -> None:
        self.hang_up_at = time.monotonic() + after
        self.body_sent = False

    async def __call__(self) -> dict:
        if not self.body_sent:
            self.body_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        remaining = self.hang_up_at - time.monotonic()
        if remaining > 0:
            await asyncio.sleep(remaining)
        return {"type": "http.disconnect"}


def http_scope(path: str) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"test"), (b"x-request-id", b"req-hangs-up")],
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }


def wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestDisconnectOverASGI:

    def setup_method(self):
        self.interrupted = []
        slow = service(300)

        def recording_service(token):
            try:
                return slow(token)
            except InterruptedSignal as e:
                self.interrupted.append(e)
                raise

        self.app = create_app(
            make_settings(timeout_seconds=30.0, future_timeout_seconds=30.0),
            activity_service=recording_service,
        )
        self.controller = self.app.state.controller

    def teardown_method(self):
        self.controller.shutdown()
        self.controller.pool.shutdown(wait=False)

    async def call(self, path: str, hang_up_after: float):
        sent = []

        async def send(message):
            sent.append(message)

        start = time.monotonic()
        await asyncio.wait_for(
            self.app(http_scope(path), HangingUpClient(hang_up_after), send), 5.0
        )
        return sent, time.monotonic() - start

    @pytest.mark.anyio
    async def test_suspended_hang_up_interrupts_task(self):
        sent, elapsed = await self.call("/activity/suspended", 0.2)

        # Disconnect at 0.2s, seen within one 0.05s poll
        assert elapsed < 1.0
        start = sent[0]
        assert start["type"] == "http.response.start"
        assert start["status"] == 499
        assert (b"x-request-id", b"req-hangs-up") in start["headers"]

        assert await asyncio.to_thread(
            wait_until, lambda: self.controller.stats().outcomes["failure"] == 1
        )
        outcomes = self.controller.stats().outcomes
        assert outcomes["timeout"] == 0
        assert outcomes["success"] == 0
        assert len(self.interrupted) == 1

    @pytest.mark.anyio
    async def test_reactive_hang_up_cancels_future(self):
        sent, elapsed = await self.call("/activity/reactive", 0.2)

        assert elapsed < 1.0
        assert sent[0]["status"] == 499

        outcomes = self.controller.stats().outcomes
        assert outcomes["cancelled"] == 1
        assert outcomes["timeout"] == 0
        # Cancel policy stops the task at its next checkpoint
        assert await asyncio.to_thread(wait_until, lambda: len(self.interrupted) == 1)
        assert self.controller.in_flight() == 0
