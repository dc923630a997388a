"""Live session event fan-out.

Components:
- types.py: Event payload definitions
- stream.py: Lifespan-scoped broker with per-subscription TTL
"""

from pomodoro.events.stream import SessionEventBroker, Subscription
from pomodoro.events.types import SessionEventData, SessionEventType

__all__ = [
    "SessionEventBroker",
    "Subscription",
    "SessionEventData",
    "SessionEventType",
]
