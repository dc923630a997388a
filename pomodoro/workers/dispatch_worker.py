"""Phase notification dispatch worker.

Sends one push per phase boundary. Work comes from two places:
1. Scheduled notification rows whose time has come
2. Running sessions past their boundary that were never notified and have no
   pending row (safety net for boundaries that lost their row)

Both feed the same send-and-mark pipeline. Outcomes:
- Delivered: row marked sent, session marked notified if its boundary is
  unchanged
- Transient failure: row stays pending and is retried on the next poll
- Permanent failure: counted separately; after enough of them the row is
  cancelled
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from pomodoro.clock import Clock
from pomodoro.config import get_settings
from pomodoro.errors import DeliveryFailure
from pomodoro.models.activity import Activity
from pomodoro.models.notification import ScheduledNotification
from pomodoro.models.session import PomodoroSession, SessionStatus
from pomodoro.notifications.sender import NotificationSender, get_notification_sender
from pomodoro.services.notifications import NotificationScheduler, build_phase_message
from pomodoro.workers.base import WorkerBase

logger = logging.getLogger(__name__)


class DispatchSource(str, Enum):
    """Where a dispatch item came from."""

    SCHEDULED = "scheduled"
    SAFETY_NET = "safety_net"


@dataclass
class DispatchItem:
    """Snapshot of one notification to deliver."""

    source: DispatchSource
    session_id: UUID
    user_id: UUID
    title: str
    body: str
    boundary: datetime | None
    notification_id: UUID | None = None
    permanent_failures: int = 0


def _is_permanent(error: Exception) -> bool:
    return isinstance(error, DeliveryFailure) and error.permanent


class PhaseDispatchWorker(WorkerBase[DispatchItem]):
    """Worker delivering phase-boundary push notifications."""

    def __init__(
        self,
        sender: NotificationSender | None = None,
        scheduler: NotificationScheduler | None = None,
        batch_size: int = 50,
        max_permanent_attempts: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(batch_size=batch_size, clock=clock)
        self.sender = sender or get_notification_sender()
        self.scheduler = scheduler or NotificationScheduler()
        self.max_permanent_attempts = (
            max_permanent_attempts or get_settings().NOTIFICATION_MAX_PERMANENT_ATTEMPTS
        )

    @property
    def worker_name(self) -> str:
        return "PhaseDispatchWorker"

    def fetch_pending(self, session: Session, now: datetime) -> list[DispatchItem]:
        """Fetch due scheduled rows first, then overdue un-notified sessions."""
        items = [
            DispatchItem(
                source=DispatchSource.SCHEDULED,
                session_id=notification.session_id,
                user_id=notification.user_id,
                title=notification.title,
                body=notification.body,
                boundary=notification.scheduled_at,
                notification_id=notification.id,
                permanent_failures=notification.permanent_failures,
            )
            for notification in self.scheduler.find_due(session, now, limit=self.batch_size)
        ]

        remaining = self.batch_size - len(items)
        if remaining > 0:
            items.extend(self._fetch_overdue_sessions(session, now, remaining))
        return items

    def _fetch_overdue_sessions(
        self, session: Session, now: datetime, limit: int
    ) -> list[DispatchItem]:
        pending_sessions = (
            select(ScheduledNotification.session_id)
            .where(ScheduledNotification.sent == False)
            .where(ScheduledNotification.cancelled == False)
        )
        rows = session.exec(
            select(PomodoroSession, Activity.user_id)
            .join(Activity, Activity.id == PomodoroSession.activity_id)
            .where(PomodoroSession.status == SessionStatus.IN_PROGRESS)
            .where(PomodoroSession.phase_ends_at != None)
            .where(PomodoroSession.phase_ends_at <= now)
            .where(PomodoroSession.phase_notified == False)
            .where(PomodoroSession.id.not_in(pending_sessions))
            .order_by(PomodoroSession.phase_ends_at)
            .limit(limit)
        ).all()

        items = []
        for pomodoro, user_id in rows:
            message = build_phase_message(pomodoro)
            items.append(
                DispatchItem(
                    source=DispatchSource.SAFETY_NET,
                    session_id=pomodoro.id,
                    user_id=user_id,
                    title=message.title,
                    body=message.body,
                    boundary=pomodoro.phase_ends_at,
                )
            )
        if items:
            logger.warning(
                "Found overdue sessions without a pending notification",
                extra={"count": len(items)},
            )
        return items

    def mark_processing(self, session: Session, item: DispatchItem, now: datetime) -> bool:
        """Skip rows that were sent or cancelled, and sessions that moved on."""
        if item.source == DispatchSource.SCHEDULED:
            notification = session.get(ScheduledNotification, item.notification_id)
            return notification is not None and notification.is_pending

        pomodoro = session.get(PomodoroSession, item.session_id)
        return (
            pomodoro is not None
            and pomodoro.status == SessionStatus.IN_PROGRESS
            and pomodoro.phase_ends_at == item.boundary
            and not pomodoro.phase_notified
        )

    def process_item(self, item: DispatchItem) -> None:
        self.sender.send(item.user_id, item.title, item.body)

    def mark_completed(self, session: Session, item: DispatchItem, now: datetime) -> None:
        if item.source == DispatchSource.SCHEDULED:
            self.scheduler.mark_sent(session, item.notification_id, now)
        self._mark_session_notified(session, item)

    def mark_failed(
        self,
        session: Session,
        item: DispatchItem,
        error: Exception,
        can_retry: bool,
        now: datetime,
    ) -> None:
        permanent = _is_permanent(error)

        if item.source == DispatchSource.SCHEDULED:
            notification = self.scheduler.record_failure(
                session,
                item.notification_id,
                error=str(error),
                permanent=permanent,
                max_attempts=self.max_permanent_attempts,
            )
            if notification is not None and notification.cancelled and permanent:
                # Dropped as undeliverable; the safety net must not pick the boundary up
                self._mark_session_notified(session, item)
        elif permanent:
            # No row to count attempts on; give up on this boundary
            self._mark_session_notified(session, item)

    def get_item_id(self, item: DispatchItem) -> UUID:
        return item.notification_id or item.session_id

    def should_retry(self, item: DispatchItem, error: Exception) -> bool:
        if not _is_permanent(error):
            return True
        if item.source == DispatchSource.SAFETY_NET:
            return False
        return item.permanent_failures + 1 < self.max_permanent_attempts

    def _mark_session_notified(self, session: Session, item: DispatchItem) -> None:
        """Set phase_notified only while the session still sits on the same boundary."""
        if item.boundary is None:
            return
        session.exec(
            update(PomodoroSession)
            .where(PomodoroSession.id == item.session_id)
            .where(PomodoroSession.phase_ends_at == item.boundary)
            .values(phase_notified=True)
            .execution_options(synchronize_session=False)
        )
