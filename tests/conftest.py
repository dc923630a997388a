"""Shared pytest fixtures for the test suite."""

from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from pomodoro.models.activity import Activity
from pomodoro.models.session import PomodoroSession, SessionType
from pomodoro.models.user import User


class ManualClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import all models to register them
    from pomodoro.models import Activity, PomodoroSession, ScheduledNotification, User  # noqa: F401

    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture
def test_user(db_session: Session) -> User:
    """Create a test user."""
    user = User(email="test@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session: Session) -> User:
    """A second user who owns nothing of test_user's."""
    user = User(email="other@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_activity(db_session: Session, test_user: User) -> Activity:
    """Create an activity owned by test_user."""
    activity = Activity(user_id=test_user.id, title="Write thesis")
    db_session.add(activity)
    db_session.commit()
    db_session.refresh(activity)
    return activity


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 1, 5, 9, 0, 0)


@pytest.fixture
def clock(t0: datetime) -> ManualClock:
    return ManualClock(t0)


# =============================================================================
# Session Factory
# =============================================================================


@pytest.fixture
def make_session(db_session: Session, test_activity: Activity, clock: ManualClock):
    """Persist a NOT_STARTED session with the given timing overrides."""

    def _make(**overrides) -> PomodoroSession:
        values = {
            "activity_id": test_activity.id,
            "session_type": SessionType.CLASSIC,
            "total_cycles": 4,
            "created_at": clock.now(),
            "updated_at": clock.now(),
        }
        values.update(overrides)
        pomodoro = PomodoroSession(**values)
        db_session.add(pomodoro)
        db_session.commit()
        db_session.refresh(pomodoro)
        return pomodoro

    return _make
