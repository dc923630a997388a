"""Activity entity model (read-only for this core)."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from pomodoro.clock import utcnow


class Activity(SQLModel, table=True):
    """Activity database model.

    Sessions point at an activity and activities point at a user. Both are
    plain foreign keys, resolved through queries rather than relationships.
    """

    __tablename__ = "activities"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    title: str = Field(min_length=1, max_length=200)
    created_at: datetime = Field(default_factory=utcnow)
