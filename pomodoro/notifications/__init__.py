"""Push notification delivery."""

from pomodoro.notifications.sender import (
    HttpPushSender,
    LoggingNotificationSender,
    NotificationSender,
    get_notification_sender,
)

__all__ = [
    "NotificationSender",
    "LoggingNotificationSender",
    "HttpPushSender",
    "get_notification_sender",
]
