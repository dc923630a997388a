"""Notification scheduler store.

Keeps at most one pending ``ScheduledNotification`` per session, mirroring
the session's current phase boundary:

1. A command that creates a new boundary upserts the pending row
   (cancel-then-create inside the caller's transaction)
2. A command that removes the boundary cancels the pending row
3. The dispatch worker reads due rows and records delivery outcomes

None of these methods commit; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, or_
from sqlmodel import Session, select

from pomodoro.models.notification import NotificationType, ScheduledNotification
from pomodoro.models.session import CyclePhase, PomodoroSession, SessionStatus

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Notification Copy
# -----------------------------------------------------------------------------


@dataclass
class PhaseMessage:
    """Title, body and type for the notification ending the current phase."""

    title: str
    body: str
    notification_type: NotificationType = NotificationType.PHASE_COMPLETE


def build_phase_message(pomodoro: PomodoroSession) -> PhaseMessage:
    """Build the message announcing the end of ``pomodoro``'s current phase."""
    if pomodoro.current_phase == CyclePhase.FOCUS:
        if pomodoro.next_break_phase() == CyclePhase.LONG_BREAK:
            return PhaseMessage(
                title="Focus Complete - Long Break Time!",
                body=(
                    f"Great work! {pomodoro.focus_minutes} minutes of focus done. "
                    f"Time for a {pomodoro.long_break_minutes} minute long break."
                ),
            )
        return PhaseMessage(
            title="Focus Complete - Take a Break!",
            body=(
                f"Great work! {pomodoro.focus_minutes} minutes of focus done. "
                f"Time for a {pomodoro.break_minutes} minute break."
            ),
        )

    if pomodoro.completes_session_after_break():
        cycles = pomodoro.cycles_completed + 1
        plural = "" if cycles == 1 else "s"
        return PhaseMessage(
            title="Session Complete!",
            body=(
                f"Congratulations! You completed {cycles} cycle{plural}. "
                "Great job staying focused!"
            ),
            notification_type=NotificationType.SESSION_COMPLETE,
        )

    if pomodoro.current_phase == CyclePhase.LONG_BREAK:
        return PhaseMessage(
            title="Long Break Over - Back to Focus!",
            body="Feeling refreshed? Let's get back to work!",
        )
    return PhaseMessage(
        title="Break Over - Time to Focus!",
        body=f"Break complete. Ready for {pomodoro.focus_minutes} minutes of focus?",
    )


# -----------------------------------------------------------------------------
# Scheduler Store
# -----------------------------------------------------------------------------


class NotificationScheduler:
    """Persistence of pending phase notifications."""

    def upsert_pending(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        title: str,
        body: str,
        notification_type: NotificationType,
        current_phase: CyclePhase,
        scheduled_at: datetime,
        activity_id: UUID | None = None,
    ) -> ScheduledNotification:
        """Replace the session's pending notification with a new one.

        Args:
            session: Database session
            session_id: The pomodoro session the notification belongs to
            user_id: Recipient
            title: Notification title
            body: Notification body
            notification_type: PHASE_COMPLETE or SESSION_COMPLETE
            current_phase: Phase that ends at ``scheduled_at``
            scheduled_at: Phase boundary
            activity_id: Optional activity reference

        Returns:
            ScheduledNotification: The new pending row
        """
        self.cancel_for_session(session, session_id)
        # The cancel must reach the database before the insert because of
        # the one-pending-per-session unique index.
        session.flush()

        notification = ScheduledNotification(
            session_id=session_id,
            user_id=user_id,
            activity_id=activity_id,
            title=title,
            body=body,
            notification_type=notification_type,
            current_phase=current_phase,
            scheduled_at=scheduled_at,
        )
        session.add(notification)
        session.flush()

        logger.info(
            "Notification scheduled",
            extra={
                "notification_id": str(notification.id),
                "session_id": str(session_id),
                "phase": current_phase.value,
                "scheduled_at": scheduled_at.isoformat(),
            },
        )
        return notification

    def cancel_for_session(self, session: Session, session_id: UUID) -> int:
        """Cancel the session's pending notification, if any.

        Returns:
            int: Number of rows cancelled (0 or 1)
        """
        pending = session.exec(
            select(ScheduledNotification)
            .where(ScheduledNotification.session_id == session_id)
            .where(ScheduledNotification.sent == False)
            .where(ScheduledNotification.cancelled == False)
        ).all()

        for notification in pending:
            notification.cancelled = True
            session.add(notification)

        if pending:
            logger.info(
                "Pending notification cancelled",
                extra={"session_id": str(session_id), "count": len(pending)},
            )
        return len(pending)

    def get_pending_for_session(
        self, session: Session, session_id: UUID
    ) -> ScheduledNotification | None:
        return session.exec(
            select(ScheduledNotification)
            .where(ScheduledNotification.session_id == session_id)
            .where(ScheduledNotification.sent == False)
            .where(ScheduledNotification.cancelled == False)
        ).first()

    def find_due(
        self, session: Session, now: datetime, limit: int = 100
    ) -> list[ScheduledNotification]:
        """Pending rows whose ``scheduled_at`` has passed, oldest first."""
        return list(
            session.exec(
                select(ScheduledNotification)
                .where(ScheduledNotification.sent == False)
                .where(ScheduledNotification.cancelled == False)
                .where(ScheduledNotification.scheduled_at <= now)
                .order_by(ScheduledNotification.scheduled_at)
                .limit(limit)
            ).all()
        )

    def mark_sent(
        self, session: Session, notification_id: UUID, now: datetime
    ) -> ScheduledNotification | None:
        """Mark a pending notification as sent. Idempotent.

        Cancelled rows are left untouched even when the send went out.

        Returns:
            ScheduledNotification or None if not found
        """
        notification = session.get(ScheduledNotification, notification_id)
        if notification is None:
            return None
        if not notification.is_pending:
            return notification

        notification.sent = True
        notification.sent_at = now
        notification.last_error = None
        session.add(notification)

        logger.info(
            "Notification marked as sent",
            extra={"notification_id": str(notification_id)},
        )
        return notification

    def record_failure(
        self,
        session: Session,
        notification_id: UUID,
        error: str,
        permanent: bool,
        max_attempts: int,
    ) -> ScheduledNotification | None:
        """Count a failed delivery attempt.

        Every failure counts towards ``attempts``; only permanent ones count
        towards ``permanent_failures``. The row stays pending so the next poll
        retries it, except when a permanent failure has been seen
        ``max_attempts`` times, in which case the row is cancelled as
        undeliverable.
        """
        notification = session.get(ScheduledNotification, notification_id)
        if notification is None or not notification.is_pending:
            return notification

        notification.attempts += 1
        notification.last_error = error[:1000]
        if permanent:
            notification.permanent_failures += 1
        if notification.permanent_failures >= max_attempts:
            notification.cancelled = True
            logger.warning(
                "Notification dropped as undeliverable",
                extra={
                    "notification_id": str(notification_id),
                    "permanent_failures": notification.permanent_failures,
                    "attempts": notification.attempts,
                },
            )
        session.add(notification)
        return notification

    def purge_older_than(self, session: Session, cutoff: datetime) -> int:
        """Delete sent or cancelled rows created before ``cutoff``.

        Pending rows are never purged.

        Returns:
            int: Number of rows deleted
        """
        result = session.exec(
            delete(ScheduledNotification)
            .where(ScheduledNotification.created_at < cutoff)
            .where(
                or_(
                    ScheduledNotification.sent == True,
                    ScheduledNotification.cancelled == True,
                )
            )
        )
        deleted = result.rowcount or 0
        if deleted:
            logger.info(
                "Old notifications purged",
                extra={"count": deleted, "cutoff": cutoff.isoformat()},
            )
        return deleted

    def sync_for_session(
        self, session: Session, pomodoro: PomodoroSession, user_id: UUID
    ) -> ScheduledNotification | None:
        """Make the pending row reflect ``pomodoro``'s current boundary.

        A running session with an unannounced boundary gets a fresh pending
        row; any other state leaves the session without one.
        """
        if (
            pomodoro.status == SessionStatus.IN_PROGRESS
            and pomodoro.phase_ends_at
            and not pomodoro.phase_notified
        ):
            message = build_phase_message(pomodoro)
            return self.upsert_pending(
                session,
                session_id=pomodoro.id,
                user_id=user_id,
                activity_id=pomodoro.activity_id,
                title=message.title,
                body=message.body,
                notification_type=message.notification_type,
                current_phase=pomodoro.current_phase,
                scheduled_at=pomodoro.phase_ends_at,
            )

        self.cancel_for_session(session, pomodoro.id)
        return None
