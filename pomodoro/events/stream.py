"""In-process fan-out of session events to live subscribers.

The broker is owned by the application lifespan and handed to the request
handlers through a dependency. Each subscription has a bounded lifetime;
``close()`` ends every open subscription at shutdown.
"""

import logging
import queue
import threading
import time
from uuid import UUID, uuid4

from pomodoro.events.types import SessionEventData

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One listener on one session's events."""

    def __init__(self, session_id: UUID, ttl_seconds: float) -> None:
        self.id = uuid4()
        self.session_id = session_id
        self.expires_at = time.monotonic() + ttl_seconds
        self.closed = False
        self._queue: queue.Queue = queue.Queue()

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    @property
    def active(self) -> bool:
        return not self.closed and not self.expired

    def deliver(self, event: SessionEventData) -> None:
        self._queue.put(event)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def next_event(self, timeout: float) -> SessionEventData | None:
        """Wait up to ``timeout`` seconds for the next event.

        Returns None on timeout or once the subscription is closed.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self.closed = True
            return None
        return item


class SessionEventBroker:
    """Registry of subscriptions keyed by session ID."""

    def __init__(self, ttl_seconds: float = 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._subscriptions: dict[UUID, dict[UUID, Subscription]] = {}
        self._closed = False

    def subscribe(self, session_id: UUID) -> Subscription:
        subscription = Subscription(session_id, self.ttl_seconds)
        with self._lock:
            if self._closed:
                subscription.close()
                return subscription
            self._subscriptions.setdefault(session_id, {})[subscription.id] = subscription

        logger.debug(
            "Event stream subscribed",
            extra={"session_id": str(session_id), "subscription_id": str(subscription.id)},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            listeners = self._subscriptions.get(subscription.session_id)
            if listeners is None:
                return
            listeners.pop(subscription.id, None)
            if not listeners:
                del self._subscriptions[subscription.session_id]

    def publish(self, session_id: UUID, event: SessionEventData) -> int:
        """Deliver ``event`` to every live subscription of ``session_id``.

        Expired subscriptions are closed and dropped on the way.

        Returns:
            int: Number of subscriptions that received the event
        """
        with self._lock:
            listeners = list(self._subscriptions.get(session_id, {}).values())

        delivered = 0
        for subscription in listeners:
            if subscription.expired:
                subscription.close()
                self.unsubscribe(subscription)
                continue
            subscription.deliver(event)
            delivered += 1
        return delivered

    def subscriber_count(self, session_id: UUID | None = None) -> int:
        with self._lock:
            if session_id is not None:
                return len(self._subscriptions.get(session_id, {}))
            return sum(len(listeners) for listeners in self._subscriptions.values())

    def close(self) -> None:
        """Close every subscription and refuse new ones."""
        with self._lock:
            self._closed = True
            listeners = [
                subscription
                for by_id in self._subscriptions.values()
                for subscription in by_id.values()
            ]
            self._subscriptions.clear()

        for subscription in listeners:
            subscription.close()
        logger.info("Event broker closed", extra={"subscriptions": len(listeners)})
