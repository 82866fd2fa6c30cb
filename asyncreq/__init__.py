"""
asyncreq - Resolve each request exactly once, whatever happens first.

An inbound request is decoupled from the worker that produces its result. The
task result, a task error, the deadline, or an explicit cancel resolves the
request; whichever arrives first wins and everything later is discarded.

Suspend and resume:
    from asyncreq import LifecycleController, WorkerPool, ActivityService

    controller = LifecycleController(WorkerPool(max_workers=50), timeout=8.0)
    handle = controller.begin_async(ActivityService())
    handle.on_completion(lambda outcome: print(outcome.kind))

Future style:
    future = controller.begin_future(ActivityService(), fallback="timed out")
    outcome = await future.to_asyncio()

HTTP server:
    uvicorn asyncreq.server:app
"""

# =============================================================================
# Core lifecycle
# =============================================================================
from asyncreq.controller import (  # noqa: F401
    AsyncResponse,
    ControllerStats,
    LifecycleController,
)
from asyncreq.future import ResponseFuture  # noqa: F401
from asyncreq.pending import PendingRequest  # noqa: F401
from asyncreq.cancellation import CancellationToken  # noqa: F401

# =============================================================================
# Execution
# =============================================================================
from asyncreq.pool import (  # noqa: F401
    PoolStats,
    WorkerPool,
    configure_default_pool,
    get_default_pool,
)
from asyncreq.scheduler import ScheduledTimeout, TimeoutScheduler  # noqa: F401
from asyncreq.transport import AsyncioTransport, Transport  # noqa: F401

# =============================================================================
# Simulated work
# =============================================================================
from asyncreq.tasks import (  # noqa: F401
    ActivityService,
    AlwaysFail,
    FixedDuration,
    NoFaults,
    RandomFaults,
    TaskRun,
    UniformDuration,
)

# =============================================================================
# Outcomes and errors
# =============================================================================
from asyncreq.models import (  # noqa: F401
    Cancelled,
    DisconnectPolicy,
    Failure,
    Outcome,
    OutcomeKind,
    RequestState,
    Success,
    Timeout,
)
from asyncreq.exceptions import (  # noqa: F401
    AsyncReqError,
    DeadlineExceeded,
    InterruptedSignal,
    PeerGone,
    PoolCapacityError,
    PoolClosedError,
    TaskError,
)

__version__ = "1.0.0"

__all__ = [
    "AsyncResponse",
    "ControllerStats",
    "LifecycleController",
    "ResponseFuture",
    "PendingRequest",
    "CancellationToken",
    "PoolStats",
    "WorkerPool",
    "configure_default_pool",
    "get_default_pool",
    "ScheduledTimeout",
    "TimeoutScheduler",
    "AsyncioTransport",
    "Transport",
    "ActivityService",
    "AlwaysFail",
    "FixedDuration",
    "NoFaults",
    "RandomFaults",
    "TaskRun",
    "UniformDuration",
    "Cancelled",
    "DisconnectPolicy",
    "Failure",
    "Outcome",
    "OutcomeKind",
    "RequestState",
    "Success",
    "Timeout",
    "AsyncReqError",
    "DeadlineExceeded",
    "InterruptedSignal",
    "PeerGone",
    "PoolCapacityError",
    "PoolClosedError",
    "TaskError",
]
