"""
End-to-end simulation: many concurrent requests through one controller.

Each request draws a duration and a fault flag up front, so the expected
outcome is known before it runs:

    faulty                   -> failure
    duration < timeout       -> success
    duration > timeout       -> timeout
    duration == timeout      -> success or timeout (too close to call)

Durations and the timeout are in checkpoint units; ``checkpoint_interval``
scales them to wall-clock seconds, which lets tests run the reference
scenario (5-11 s tasks, 8 s deadline) in a fraction of the time.
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from asyncreq.controller import LifecycleController
from asyncreq.models import Outcome, OutcomeKind
from asyncreq.pool import WorkerPool
from asyncreq.scheduler import TimeoutScheduler
from asyncreq.tasks import ActivityService, AlwaysFail, FixedDuration, NoFaults


class CountingTransport:
    """Transport that records every send, to catch double transmissions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: List[Outcome] = []

    def send(self, outcome: Outcome) -> None:
        with self._lock:
            self.sent.append(outcome)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self.sent)


@dataclass
class SimulatedRequest:
    """One request in the simulation and what happened to it."""

    index: int
    duration: int
    faulty: bool
    outcome: Optional[str] = None
    transmissions: int = 0

    def expected(self, timeout: float) -> List[str]:
        if self.faulty:
            return [OutcomeKind.FAILURE.value]
        if self.duration < timeout:
            return [OutcomeKind.SUCCESS.value]
        if self.duration > timeout:
            return [OutcomeKind.TIMEOUT.value]
        return [OutcomeKind.SUCCESS.value, OutcomeKind.TIMEOUT.value]

    def matches(self, timeout: float) -> bool:
        return self.outcome in self.expected(timeout)


@dataclass
class SimulationReport:
    """
    Results from a simulation run.

    Attributes:
        requests: Per-request detail.
        outcomes: Count of resolved requests by outcome kind.
        double_transmissions: Requests whose transport saw more than one send.
        mismatches: Indices of requests whose outcome was not the expected one.
        elapsed_seconds: Wall-clock time for the whole run.
    """

    timeout: float
    checkpoint_interval: float
    requests: List[SimulatedRequest] = field(default_factory=list)
    outcomes: Dict[str, int] = field(default_factory=dict)
    double_transmissions: int = 0
    mismatches: List[int] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.mismatches and self.double_transmissions == 0

    def to_dict(self, include_requests: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if not include_requests:
            data.pop("requests")
        data["ok"] = self.ok
        return data


def run_simulation(
    *,
    requests: int = 100,
    timeout: float = 8.0,
    low: int = 5,
    high: int = 11,
    fault_probability: float = 0.5,
    checkpoint_interval: float = 1.0,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None,
) -> SimulationReport:
    """
    Submit ``requests`` concurrent requests and check every outcome.

    Blocks until every task has finished, including tasks whose request
    already timed out, so late results get the chance to (wrongly) transmit.
    """
    rng = random.Random(seed)
    pool = WorkerPool(max_workers=max_workers or requests)
    scheduler = TimeoutScheduler()
    controller = LifecycleController(
        pool, scheduler, timeout=timeout * checkpoint_interval
    )
    report = SimulationReport(timeout=timeout, checkpoint_interval=checkpoint_interval)

    started = time.monotonic()
    transports: List[CountingTransport] = []
    handles = []
    try:
        for index in range(requests):
            sim = SimulatedRequest(
                index=index,
                duration=rng.randint(low, high),
                faulty=rng.random() < fault_probability,
            )
            service = ActivityService(
                faults=AlwaysFail() if sim.faulty else NoFaults(),
                durations=FixedDuration(sim.duration),
                checkpoint_interval=checkpoint_interval,
            )
            transport = CountingTransport()
            handles.append(
                controller.begin_async(service, transport=transport, label="Simulation")
            )
            transports.append(transport)
            report.requests.append(sim)

        deadline = (timeout + 2) * checkpoint_interval + 5.0
        for handle in handles:
            handle.wait(deadline)
    finally:
        # Let background tasks finish so late results are observed
        pool.shutdown(wait=True)
        controller.shutdown()

    for sim, handle, transport in zip(report.requests, handles, transports):
        outcome = handle.outcome
        sim.outcome = outcome.kind.value if outcome is not None else None
        sim.transmissions = transport.count
        if sim.transmissions > 1:
            report.double_transmissions += 1
        if not sim.matches(timeout):
            report.mismatches.append(sim.index)
        if sim.outcome is not None:
            report.outcomes[sim.outcome] = report.outcomes.get(sim.outcome, 0) + 1

    report.elapsed_seconds = time.monotonic() - started
    return report


def format_report(report: SimulationReport) -> str:
    """Human-readable summary."""
    lines = []
    lines.append("=" * 60)
    lines.append(
        f"SIMULATION: {len(report.requests)} requests, "
        f"timeout={report.timeout:g} units x {report.checkpoint_interval:g}s"
    )
    lines.append("=" * 60)
    lines.append("--- Outcomes ---")
    for kind, count in sorted(report.outcomes.items()):
        pct = count / max(1, len(report.requests)) * 100
        lines.append(f"  {kind}: {count} ({pct:.1f}%)")
    lines.append("")
    lines.append(f"Double transmissions: {report.double_transmissions}")
    lines.append(f"Unexpected outcomes: {len(report.mismatches)}")
    lines.append(f"Elapsed: {report.elapsed_seconds:.2f}s")
    lines.append("Result: " + ("OK" if report.ok else "FAILED"))
    return "\n".join(lines)


__all__ = [
    "CountingTransport",
    "SimulatedRequest",
    "SimulationReport",
    "run_simulation",
    "format_report",
]
