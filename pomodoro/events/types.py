"""Event type definitions for live session updates."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from pomodoro.clock import utcnow


class SessionEventType(str, Enum):
    """Event types pushed to live session subscribers."""

    PHASE_COMPLETED = "session.phase_completed.v1"


class SessionEventData(BaseModel):
    """Payload pushed to subscribers of one session's event stream."""

    event_type: SessionEventType = Field(description="Event type (versioned)")
    session_id: UUID = Field(description="Pomodoro session ID")
    status: str = Field(description="Session status after the command")
    completed_phase: str = Field(description="Phase that just ended")
    current_phase: str = Field(description="Phase now running")
    cycles_completed: int
    phase_ends_at: datetime | None = None
    remaining_phase_seconds: int = 0
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="Event timestamp (UTC)",
    )

    def to_sse(self) -> str:
        """Render as a server-sent events frame."""
        return f"event: {self.event_type.value}\ndata: {self.model_dump_json()}\n\n"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
