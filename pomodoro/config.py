"""Environment configuration for the Pomodoro backend."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.AUTH_SECRET: str = os.getenv("AUTH_SECRET", "")
        self.FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:4200")
        self.JWT_ALGORITHM: str = "HS256"

        # Background workers
        self.WORKER_BATCH_SIZE: int = int(os.getenv("WORKER_BATCH_SIZE", "50"))
        self.DISPATCH_POLL_INTERVAL_SECONDS: int = int(
            os.getenv("DISPATCH_POLL_INTERVAL_SECONDS", "5")
        )
        self.CLEANUP_INTERVAL_SECONDS: int = int(
            os.getenv("CLEANUP_INTERVAL_SECONDS", str(24 * 60 * 60))
        )
        self.NOTIFICATION_RETENTION_DAYS: int = int(
            os.getenv("NOTIFICATION_RETENTION_DAYS", "7")
        )
        self.NOTIFICATION_MAX_PERMANENT_ATTEMPTS: int = int(
            os.getenv("NOTIFICATION_MAX_PERMANENT_ATTEMPTS", "3")
        )
        self.STALE_SESSION_HOURS: int = int(os.getenv("STALE_SESSION_HOURS", "12"))

        # Push delivery gateway (simulated delivery when unset)
        self.PUSH_GATEWAY_URL: str = os.getenv("PUSH_GATEWAY_URL", "")
        self.PUSH_GATEWAY_TOKEN: str = os.getenv("PUSH_GATEWAY_TOKEN", "")
        self.PUSH_TIMEOUT_SECONDS: float = float(os.getenv("PUSH_TIMEOUT_SECONDS", "5"))

        # Live session event stream
        self.EVENT_STREAM_TTL_SECONDS: int = int(
            os.getenv("EVENT_STREAM_TTL_SECONDS", "3600")
        )
        self.EVENT_STREAM_KEEPALIVE_SECONDS: int = int(
            os.getenv("EVENT_STREAM_KEEPALIVE_SECONDS", "15")
        )

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")
        if not self.AUTH_SECRET:
            raise ValueError("AUTH_SECRET environment variable is required")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
