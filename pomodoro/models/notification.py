"""ScheduledNotification entity model for phase-boundary push notifications."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from pomodoro.clock import utcnow
from pomodoro.models.session import CyclePhase


class NotificationType(str, Enum):
    """Kinds of scheduled notification."""
    PHASE_COMPLETE = "PHASE_COMPLETE"
    SESSION_COMPLETE = "SESSION_COMPLETE"


class ScheduledNotification(SQLModel, table=True):
    """Scheduled notification database model.

    One row per phase boundary. At most one row per session may be pending
    (neither sent nor cancelled); the partial unique index below enforces it.
    """

    __tablename__ = "scheduled_notifications"
    __table_args__ = (
        Index(
            "uq_scheduled_notifications_pending_session",
            "session_id",
            unique=True,
            postgresql_where=text("NOT sent AND NOT cancelled"),
            sqlite_where=text("NOT sent AND NOT cancelled"),
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    session_id: UUID = Field(foreign_key="pomodoro_sessions.id", index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    activity_id: UUID | None = Field(default=None, foreign_key="activities.id")
    title: str = Field(max_length=200)
    body: str = Field(max_length=1000)
    notification_type: NotificationType = Field(default=NotificationType.PHASE_COMPLETE)
    current_phase: CyclePhase
    scheduled_at: datetime = Field(index=True)
    sent: bool = Field(default=False)
    cancelled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)

    # Retry bookkeeping
    attempts: int = Field(default=0)
    permanent_failures: int = Field(default=0)
    last_error: str | None = Field(default=None)
    sent_at: datetime | None = Field(default=None)

    @property
    def is_pending(self) -> bool:
        return not self.sent and not self.cancelled
