"""Session command handlers.

Each command runs in one database transaction:

1. Load the session through its activity, scoped to the caller
2. Claim the next version (optimistic lock)
3. Apply the aggregate transition
4. Sync the pending phase notification
5. Commit

No push delivery happens here; the dispatch worker owns the sender.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from pomodoro.clock import Clock, SystemClock
from pomodoro.errors import ConcurrentModification, NotFoundError
from pomodoro.events.stream import SessionEventBroker
from pomodoro.events.types import SessionEventData, SessionEventType
from pomodoro.models.activity import Activity
from pomodoro.models.session import (
    PomodoroSession,
    SessionCreate,
    SessionResponse,
    SessionStatus,
    SessionType,
    validate_timing,
)
from pomodoro.services.notifications import NotificationScheduler

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Ownership
# -----------------------------------------------------------------------------


def _owned_session_query(session_id: UUID, user_id: UUID):
    return (
        select(PomodoroSession)
        .join(Activity, Activity.id == PomodoroSession.activity_id)
        .where(PomodoroSession.id == session_id)
        .where(Activity.user_id == user_id)
    )


def user_owns_session(session: Session, session_id: UUID, user_id: UUID) -> bool:
    """Check whether ``user_id`` owns the session through its activity."""
    return session.exec(_owned_session_query(session_id, user_id)).first() is not None


def get_owned_activity(session: Session, activity_id: UUID, user_id: UUID) -> Activity:
    """Get an activity owned by the user.

    Raises:
        NotFoundError: If the activity is absent or belongs to someone else
    """
    activity = session.exec(
        select(Activity)
        .where(Activity.id == activity_id)
        .where(Activity.user_id == user_id)
    ).first()
    if activity is None:
        raise NotFoundError("Activity", activity_id)
    return activity


def claim_version(session: Session, pomodoro: PomodoroSession) -> None:
    """Bump the stored version, failing if another writer got there first.

    Raises:
        ConcurrentModification: If the stored version no longer matches
    """
    current = pomodoro.version
    result = session.exec(
        update(PomodoroSession)
        .where(PomodoroSession.id == pomodoro.id)
        .where(PomodoroSession.version == current)
        .values(version=current + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrentModification(pomodoro.id)
    pomodoro.version = current + 1


# -----------------------------------------------------------------------------
# Session Service
# -----------------------------------------------------------------------------


class SessionService:
    """Command and query API for pomodoro sessions."""

    def __init__(
        self,
        clock: Clock | None = None,
        scheduler: NotificationScheduler | None = None,
        event_broker: SessionEventBroker | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or NotificationScheduler()
        self.event_broker = event_broker

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session: Session, session_id: UUID, user_id: UUID) -> SessionResponse:
        pomodoro = self._load_owned(session, session_id, user_id)
        return SessionResponse.from_session(pomodoro, self.clock.now())

    def list_for_activity(
        self,
        session: Session,
        activity_id: UUID,
        user_id: UUID,
        status: SessionStatus | None = None,
    ) -> list[SessionResponse]:
        """List an activity's sessions, newest first."""
        get_owned_activity(session, activity_id, user_id)

        statement = select(PomodoroSession).where(PomodoroSession.activity_id == activity_id)
        if status is not None:
            statement = statement.where(PomodoroSession.status == status)
        statement = statement.order_by(PomodoroSession.created_at.desc())

        now = self.clock.now()
        return [
            SessionResponse.from_session(pomodoro, now)
            for pomodoro in session.exec(statement).all()
        ]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        session: Session,
        activity_id: UUID,
        user_id: UUID,
        data: SessionCreate,
    ) -> SessionResponse:
        """Create a NOT_STARTED session under an owned activity.

        CLASSIC sessions without an explicit cycle count run a single cycle.
        """
        get_owned_activity(session, activity_id, user_id)

        total_cycles = data.total_cycles
        if data.session_type == SessionType.CLASSIC and total_cycles is None:
            total_cycles = 1

        validate_timing(
            data.focus_minutes,
            data.break_minutes,
            data.long_break_minutes,
            data.long_break_interval_cycles,
            data.session_type,
            total_cycles,
        )

        now = self.clock.now()
        pomodoro = PomodoroSession(
            activity_id=activity_id,
            session_type=data.session_type,
            focus_minutes=data.focus_minutes,
            break_minutes=data.break_minutes,
            long_break_minutes=data.long_break_minutes,
            long_break_interval_cycles=data.long_break_interval_cycles,
            total_cycles=total_cycles,
            note=data.note,
            created_at=now,
            updated_at=now,
        )
        session.add(pomodoro)
        session.commit()
        session.refresh(pomodoro)

        logger.info(
            "Session created",
            extra={
                "session_id": str(pomodoro.id),
                "activity_id": str(activity_id),
                "session_type": pomodoro.session_type.value,
            },
        )
        return SessionResponse.from_session(pomodoro, now)

    def start(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "start",
            lambda pomodoro, now: pomodoro.start(now),
            expected_version,
        )

    def pause(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "pause",
            lambda pomodoro, now: pomodoro.pause(now, note),
            expected_version,
        )

    def resume(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "resume",
            lambda pomodoro, now: pomodoro.resume(now),
            expected_version,
        )

    def stop(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "stop",
            lambda pomodoro, now: pomodoro.stop(now, note),
            expected_version,
        )

    def cancel(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "cancel",
            lambda pomodoro, now: pomodoro.cancel(now),
            expected_version,
        )

    def complete_phase(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> SessionResponse:
        """Close the running phase and publish the result to live subscribers."""
        ended = {}

        def apply(pomodoro: PomodoroSession, now: datetime) -> None:
            ended["phase"] = pomodoro.complete_phase(now, note)

        response = self._run(session, session_id, user_id, "complete_phase", apply, expected_version)
        self._publish_phase_completed(response, ended["phase"].value)
        return response

    def skip_phase(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        expected_version: int | None = None,
    ) -> SessionResponse:
        """Jump a FREESTYLE session to its next phase."""
        return self._run(
            session, session_id, user_id, "skip_phase",
            lambda pomodoro, now: pomodoro.skip_phase(now),
            expected_version,
        )

    def finish(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "finish",
            lambda pomodoro, now: pomodoro.finish(now, note),
            expected_version,
        )

    def update_timing(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        focus_minutes: int | None = None,
        break_minutes: int | None = None,
        long_break_minutes: int | None = None,
        long_break_interval_cycles: int | None = None,
        total_cycles: int | None = None,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "update_timing",
            lambda pomodoro, now: pomodoro.update_timing(
                now,
                focus_minutes=focus_minutes,
                break_minutes=break_minutes,
                long_break_minutes=long_break_minutes,
                long_break_interval_cycles=long_break_interval_cycles,
                total_cycles=total_cycles,
            ),
            expected_version,
            sync_notifications=False,
        )

    def set_note(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        note: str | None,
        expected_version: int | None = None,
    ) -> SessionResponse:
        return self._run(
            session, session_id, user_id, "set_note",
            lambda pomodoro, now: pomodoro.set_note(note, now),
            expected_version,
            sync_notifications=False,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_owned(self, session: Session, session_id: UUID, user_id: UUID) -> PomodoroSession:
        pomodoro = session.exec(_owned_session_query(session_id, user_id)).first()
        if pomodoro is None:
            raise NotFoundError("Session", session_id)
        return pomodoro

    def _run(
        self,
        session: Session,
        session_id: UUID,
        user_id: UUID,
        command: str,
        apply: Callable[[PomodoroSession, datetime], Any],
        expected_version: int | None,
        sync_notifications: bool = True,
    ) -> SessionResponse:
        pomodoro = self._load_owned(session, session_id, user_id)
        now = self.clock.now()

        try:
            if expected_version is not None and expected_version != pomodoro.version:
                raise ConcurrentModification(session_id)
            claim_version(session, pomodoro)
            apply(pomodoro, now)
            if sync_notifications:
                self.scheduler.sync_for_session(session, pomodoro, user_id)
            session.add(pomodoro)
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(pomodoro)

        logger.info(
            "Session command applied",
            extra={
                "session_id": str(session_id),
                "command": command,
                "status": pomodoro.status.value,
                "phase": pomodoro.current_phase.value,
                "version": pomodoro.version,
            },
        )
        return SessionResponse.from_session(pomodoro, now)

    def _publish_phase_completed(self, response: SessionResponse, completed_phase: str) -> None:
        if self.event_broker is None:
            return
        event = SessionEventData(
            event_type=SessionEventType.PHASE_COMPLETED,
            session_id=response.id,
            status=response.status.value,
            completed_phase=completed_phase,
            current_phase=response.current_phase.value,
            cycles_completed=response.cycles_completed,
            phase_ends_at=response.phase_ends_at,
            remaining_phase_seconds=response.remaining_phase_seconds,
        )
        delivered = self.event_broker.publish(response.id, event)
        logger.debug(
            "Phase completion published",
            extra={"session_id": str(response.id), "subscribers": delivered},
        )
