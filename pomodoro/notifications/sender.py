"""Push notification sender port and implementations.

``send`` returns when the push was accepted and raises ``DeliveryFailure``
otherwise. Only the dispatch worker calls a sender.
"""

import logging
from abc import ABC, abstractmethod
from uuid import UUID

import httpx

from pomodoro.config import get_settings
from pomodoro.errors import DeliveryFailure

logger = logging.getLogger(__name__)

# Channel is gone for good; retrying will not help
PERMANENT_STATUS_CODES = frozenset({404, 410})


class NotificationSender(ABC):
    """Delivers a push notification to every channel registered for a user."""

    @abstractmethod
    def send(self, user_id: UUID, title: str, body: str) -> None:
        """Deliver one notification.

        Raises:
            DeliveryFailure: If delivery did not succeed
        """

    def close(self) -> None:
        """Release any held resources."""


class LoggingNotificationSender(NotificationSender):
    """Simulated delivery: logs the notification and always succeeds."""

    def send(self, user_id: UUID, title: str, body: str) -> None:
        logger.info(
            "[SIMULATED] Delivering push notification",
            extra={"user_id": str(user_id), "title": title, "body": body},
        )


class HttpPushSender(NotificationSender):
    """Delivers through an HTTP push gateway.

    Response classification:
    - 2xx: delivered
    - 404, 410: permanent failure (unregistered channel)
    - anything else, including transport errors: transient failure
    """

    def __init__(
        self,
        gateway_url: str,
        token: str | None = None,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.gateway_url = gateway_url
        self.token = token
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def send(self, user_id: UUID, title: str, body: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        payload = {"user_id": str(user_id), "title": title, "body": body}

        try:
            response = self.client.post(self.gateway_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            permanent = status_code in PERMANENT_STATUS_CODES
            logger.warning(
                "Push gateway rejected notification",
                extra={
                    "user_id": str(user_id),
                    "status_code": status_code,
                    "permanent": permanent,
                },
            )
            raise DeliveryFailure(
                f"Push gateway returned {status_code}", permanent=permanent
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "Push gateway unreachable",
                extra={"user_id": str(user_id), "error": str(e)},
            )
            raise DeliveryFailure(f"Push gateway unreachable: {e}") from e

        logger.info(
            "Push notification delivered",
            extra={"user_id": str(user_id), "status_code": response.status_code},
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def get_notification_sender() -> NotificationSender:
    """Build the sender configured for this process.

    Falls back to simulated delivery when no gateway URL is set.
    """
    settings = get_settings()
    if settings.PUSH_GATEWAY_URL:
        return HttpPushSender(
            gateway_url=settings.PUSH_GATEWAY_URL,
            token=settings.PUSH_GATEWAY_TOKEN or None,
            timeout=settings.PUSH_TIMEOUT_SECONDS,
        )
    return LoggingNotificationSender()
