"""Services for the Pomodoro backend.

Services:
- sessions.py: Session commands, queries and ownership checks
- notifications.py: Pending phase-notification store and message copy
"""

from pomodoro.services.notifications import NotificationScheduler, build_phase_message
from pomodoro.services.sessions import SessionService, user_owns_session

__all__ = [
    "SessionService",
    "user_owns_session",
    "NotificationScheduler",
    "build_phase_message",
]
