"""Worker runner.

Runs the dispatch and cleanup workers, each on its own interval:
- run_once(): Every worker once
- run_loop(): Due workers on every tick until shutdown

Usage:
    runner = WorkerRunner()
    result = runner.run_once()
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlmodel import Session

from pomodoro.clock import Clock, utcnow
from pomodoro.config import get_settings
from pomodoro.db.session import engine
from pomodoro.notifications.sender import NotificationSender
from pomodoro.workers.base import WorkerResult
from pomodoro.workers.cleanup_worker import CleanupWorker
from pomodoro.workers.dispatch_worker import PhaseDispatchWorker

logger = logging.getLogger(__name__)


class Worker(Protocol):
    worker_name: str

    def run(self, session: Session) -> WorkerResult:
        ...


@dataclass
class ScheduledWorker:
    """A worker and how often it runs."""

    worker: Worker
    interval_seconds: float
    next_run_at: float = 0.0  # time.monotonic() deadline

    def is_due(self, monotonic_now: float) -> bool:
        return monotonic_now >= self.next_run_at


@dataclass
class RunnerResult:
    """Result of a worker runner cycle.

    Attributes:
        started_at: When the run started
        completed_at: When the run completed
        workers_run: Number of workers executed
        total_processed: Total items processed across all workers
        total_failed: Total items failed across all workers
        worker_results: Individual results per worker
        errors: Top-level errors during run
    """

    started_at: datetime
    completed_at: datetime | None = None
    workers_run: int = 0
    total_processed: int = 0
    total_failed: int = 0
    worker_results: dict[str, WorkerResult] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "workers_run": self.workers_run,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "worker_results": {
                name: result.to_dict()
                for name, result in self.worker_results.items()
            },
            "errors": self.errors,
        }


class WorkerRunner:
    """Orchestrates the background workers.

    Each worker keeps its own schedule; a failure in one worker is logged
    and never stops the others or the loop.
    """

    def __init__(
        self,
        workers: list[ScheduledWorker] | None = None,
        batch_size: int | None = None,
        sender: NotificationSender | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the worker runner.

        Args:
            workers: Explicit worker schedule (defaults to dispatch + cleanup)
            batch_size: Override default batch size
            sender: Sender for the dispatch worker (defaults from config)
            clock: Time source shared by the workers
        """
        settings = get_settings()
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE

        if workers is None:
            workers = [
                ScheduledWorker(
                    PhaseDispatchWorker(sender=sender, batch_size=self.batch_size, clock=clock),
                    settings.DISPATCH_POLL_INTERVAL_SECONDS,
                ),
                ScheduledWorker(
                    CleanupWorker(batch_size=self.batch_size, clock=clock),
                    settings.CLEANUP_INTERVAL_SECONDS,
                ),
            ]
        self._workers = workers

        self._logger = logging.getLogger(self.__class__.__name__)
        self._shutdown = threading.Event()

    @property
    def workers(self) -> list[ScheduledWorker]:
        return list(self._workers)

    def run_once(self, session: Session | None = None) -> RunnerResult:
        """Run every worker once, regardless of schedule."""
        return self._run(self._workers, session)

    def run_due(
        self, session: Session | None = None, monotonic_now: float | None = None
    ) -> RunnerResult:
        """Run the workers whose interval has elapsed and reschedule them."""
        monotonic_now = time.monotonic() if monotonic_now is None else monotonic_now
        due = [scheduled for scheduled in self._workers if scheduled.is_due(monotonic_now)]
        for scheduled in due:
            scheduled.next_run_at = monotonic_now + scheduled.interval_seconds
        return self._run(due, session)

    def _run(self, scheduled: list[ScheduledWorker], session: Session | None) -> RunnerResult:
        result = RunnerResult(started_at=utcnow())

        own_session = session is None
        if own_session:
            session = Session(engine)

        try:
            for entry in scheduled:
                worker = entry.worker
                try:
                    worker_result = worker.run(session)
                    result.worker_results[worker.worker_name] = worker_result
                    result.workers_run += 1
                    result.total_processed += worker_result.processed_count
                    result.total_failed += worker_result.failed_count

                except Exception as e:
                    session.rollback()
                    error_msg = f"{worker.worker_name} failed: {str(e)}"
                    result.errors.append(error_msg)
                    self._logger.error(
                        error_msg,
                        extra={"worker": worker.worker_name},
                        exc_info=True,
                    )

        finally:
            if own_session:
                session.close()

        result.completed_at = utcnow()

        if result.workers_run:
            self._logger.info("Worker run completed", extra=result.to_dict())

        return result

    def run_loop(
        self,
        tick_seconds: float | None = None,
        max_iterations: int | None = None,
    ) -> None:
        """Run due workers continuously until shutdown.

        Args:
            tick_seconds: Seconds between schedule checks (default: shortest interval)
            max_iterations: Max ticks to run (None for infinite)
        """
        tick = tick_seconds or min(entry.interval_seconds for entry in self._workers)
        iterations = 0

        self._setup_signal_handlers()

        self._logger.info(
            "Starting worker loop",
            extra={
                "tick_seconds": tick,
                "max_iterations": max_iterations,
                "workers": {
                    entry.worker.worker_name: entry.interval_seconds
                    for entry in self._workers
                },
            },
        )

        try:
            while not self._shutdown.is_set():
                if max_iterations is not None and iterations >= max_iterations:
                    self._logger.info(f"Reached max iterations ({max_iterations}), stopping")
                    break

                result = self.run_due()
                iterations += 1

                if result.workers_run:
                    self._logger.debug(
                        f"Iteration {iterations} complete",
                        extra={
                            "processed": result.total_processed,
                            "failed": result.total_failed,
                        },
                    )

                self._shutdown.wait(tick)

        except KeyboardInterrupt:
            self._logger.info("Keyboard interrupt received, shutting down")

        self._logger.info("Worker loop stopped", extra={"total_iterations": iterations})

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        if threading.current_thread() is not threading.main_thread():
            return

        def handle_signal(signum, frame):
            self._logger.info(f"Received signal {signum}, requesting shutdown")
            self._shutdown.set()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the loop."""
        self._shutdown.set()


# Configure logging for worker runs
def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("pomodoro").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
