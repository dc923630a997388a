"""SQLModel entities for the Pomodoro backend."""

from pomodoro.models.activity import Activity
from pomodoro.models.notification import NotificationType, ScheduledNotification
from pomodoro.models.session import (
    CyclePhase,
    PomodoroSession,
    SessionResponse,
    SessionStatus,
    SessionType,
)
from pomodoro.models.user import User

__all__ = [
    "User",
    "Activity",
    "PomodoroSession",
    "SessionType",
    "SessionStatus",
    "CyclePhase",
    "SessionResponse",
    "ScheduledNotification",
    "NotificationType",
]
