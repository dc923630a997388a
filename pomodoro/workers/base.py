"""Base worker abstraction.

Provides a common lifecycle for background workers that:
1. Poll for work items
2. Re-check each item right before working on it
3. Do the work with no database transaction held open
4. Record the outcome, one item per transaction

A failing item never stops the batch; its failure is recorded and the next
item is processed.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlmodel import Session

from pomodoro.clock import Clock, SystemClock, utcnow

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    """Status of a worker run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some items processed, some failed
    FAILED = "failed"
    NO_WORK = "no_work"


@dataclass
class WorkerResult:
    """Result of a worker processing cycle.

    Attributes:
        status: Overall status of the worker run
        processed_count: Number of items successfully processed
        failed_count: Number of items that failed
        skipped_count: Items that were no longer valid when re-checked
        duration_ms: Time taken for the processing cycle
        errors: List of error details for failed items
        metadata: Additional worker-specific metadata
    """

    status: WorkerStatus
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "metadata": self.metadata,
        }


def summarize(processed: int, failed: int) -> WorkerStatus:
    """Overall status from per-item counts."""
    if failed == 0 and processed > 0:
        return WorkerStatus.SUCCESS
    if processed > 0 and failed > 0:
        return WorkerStatus.PARTIAL
    if failed > 0:
        return WorkerStatus.FAILED
    return WorkerStatus.NO_WORK


# Generic type for work items
T = TypeVar("T")


class WorkerBase(ABC, Generic[T]):
    """Abstract base class for polling workers.

    Workers follow this lifecycle:
    1. fetch_pending() - Get items to process, then end the read transaction
    2. mark_processing() - Re-check the item is still valid
    3. process_item() - Do the actual work, outside any transaction
    4. mark_completed() or mark_failed() - Record the outcome and commit

    Subclasses must implement all abstract methods.
    """

    def __init__(self, batch_size: int = 50, clock: Clock | None = None) -> None:
        """Initialize the worker.

        Args:
            batch_size: Maximum items to process per cycle
            clock: Time source (defaults to the system clock)
        """
        self.batch_size = batch_size
        self.clock = clock or SystemClock()
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        """Return the worker name for logging."""

    @abstractmethod
    def fetch_pending(self, session: Session, now: datetime) -> list[T]:
        """Fetch items due at ``now`` (up to batch_size).

        Items must be plain snapshots that stay usable after the read
        transaction ends.
        """

    @abstractmethod
    def mark_processing(self, session: Session, item: T, now: datetime) -> bool:
        """Re-check an item before processing it.

        Returns:
            True if the item should still be processed, False to skip it
        """

    @abstractmethod
    def process_item(self, item: T) -> None:
        """Process a single item. No database session is available here.

        Raises:
            Exception: If processing fails
        """

    @abstractmethod
    def mark_completed(self, session: Session, item: T, now: datetime) -> None:
        """Record a successful item."""

    @abstractmethod
    def mark_failed(
        self,
        session: Session,
        item: T,
        error: Exception,
        can_retry: bool,
        now: datetime,
    ) -> None:
        """Record a failed item."""

    @abstractmethod
    def get_item_id(self, item: T) -> UUID:
        """Get the unique identifier for an item."""

    def should_retry(self, item: T, error: Exception) -> bool:
        """Whether a failed item will be picked up again by a later poll."""
        return True

    def run(self, session: Session) -> WorkerResult:
        """Execute one processing cycle.

        Args:
            session: Database session

        Returns:
            WorkerResult with processing statistics
        """
        start_time = utcnow()
        processed = 0
        failed = 0
        skipped = 0
        errors: list[dict[str, Any]] = []

        self._logger.debug(
            f"[{self.worker_name}] Starting processing cycle",
            extra={"batch_size": self.batch_size},
        )

        try:
            items = self.fetch_pending(session, self.clock.now())
            # End the read transaction before any delivery happens
            session.commit()
        except Exception as e:
            session.rollback()
            self._logger.error(
                f"[{self.worker_name}] Worker cycle failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult(
                status=WorkerStatus.FAILED,
                duration_ms=self._elapsed_ms(start_time),
                errors=[{"error": str(e)}],
            )

        if not items:
            self._logger.debug(f"[{self.worker_name}] No pending items")
            return WorkerResult(
                status=WorkerStatus.NO_WORK,
                duration_ms=self._elapsed_ms(start_time),
            )

        self._logger.info(f"[{self.worker_name}] Found {len(items)} items to process")

        for item in items:
            item_id = self.get_item_id(item)

            try:
                still_valid = self.mark_processing(session, item, self.clock.now())
                session.commit()
                if not still_valid:
                    skipped += 1
                    self._logger.debug(
                        f"[{self.worker_name}] Item {item_id} no longer due, skipping"
                    )
                    continue

                self.process_item(item)

                self.mark_completed(session, item, self.clock.now())
                session.commit()

                processed += 1
                self._logger.info(
                    f"[{self.worker_name}] Processed item {item_id}",
                    extra={"item_id": str(item_id)},
                )

            except Exception as e:
                session.rollback()
                failed += 1
                error_msg = str(e)[:500]  # Truncate long errors
                can_retry = self.should_retry(item, e)

                try:
                    self.mark_failed(session, item, e, can_retry, self.clock.now())
                    session.commit()
                except Exception:
                    session.rollback()
                    self._logger.error(
                        f"[{self.worker_name}] Could not record failure for item {item_id}",
                        extra={"item_id": str(item_id)},
                        exc_info=True,
                    )

                errors.append({
                    "item_id": str(item_id),
                    "error": error_msg,
                    "can_retry": can_retry,
                })

                self._logger.error(
                    f"[{self.worker_name}] Failed to process item {item_id}",
                    extra={
                        "item_id": str(item_id),
                        "error": error_msg,
                        "can_retry": can_retry,
                    },
                    exc_info=True,
                )

        result = WorkerResult(
            status=summarize(processed, failed),
            processed_count=processed,
            failed_count=failed,
            skipped_count=skipped,
            duration_ms=self._elapsed_ms(start_time),
            errors=errors,
        )

        self._logger.info(
            f"[{self.worker_name}] Cycle complete",
            extra=result.to_dict(),
        )

        return result

    def _elapsed_ms(self, start: datetime) -> float:
        """Calculate elapsed time in milliseconds."""
        return (utcnow() - start).total_seconds() * 1000
