"""Background workers.

- PhaseDispatchWorker: Delivers phase-boundary push notifications
- CleanupWorker: Purges old notifications, abandons stale sessions

Workers are started through WorkerRunner (see scripts/run_workers.py).
"""

from pomodoro.workers.base import (
    WorkerBase,
    WorkerResult,
    WorkerStatus,
)
from pomodoro.workers.cleanup_worker import CleanupWorker
from pomodoro.workers.dispatch_worker import DispatchItem, DispatchSource, PhaseDispatchWorker
from pomodoro.workers.runner import (
    RunnerResult,
    ScheduledWorker,
    WorkerRunner,
    configure_worker_logging,
)

__all__ = [
    # Base classes
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    # Workers
    "PhaseDispatchWorker",
    "DispatchItem",
    "DispatchSource",
    "CleanupWorker",
    # Runner
    "WorkerRunner",
    "ScheduledWorker",
    "RunnerResult",
    "configure_worker_logging",
]
