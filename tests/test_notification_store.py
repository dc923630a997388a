"""Tests for the notification scheduler store and phase message copy."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from pomodoro.models.notification import NotificationType, ScheduledNotification
from pomodoro.models.session import CyclePhase, PomodoroSession, SessionStatus, SessionType
from pomodoro.services.notifications import NotificationScheduler, build_phase_message


@pytest.fixture
def scheduler() -> NotificationScheduler:
    return NotificationScheduler()


@pytest.fixture
def pomodoro(make_session) -> PomodoroSession:
    return make_session()


def schedule(scheduler, db_session, pomodoro, user, at: datetime, title="Focus Complete - Take a Break!"):
    notification = scheduler.upsert_pending(
        db_session,
        session_id=pomodoro.id,
        user_id=user.id,
        title=title,
        body="Great work!",
        notification_type=NotificationType.PHASE_COMPLETE,
        current_phase=CyclePhase.FOCUS,
        scheduled_at=at,
        activity_id=pomodoro.activity_id,
    )
    db_session.commit()
    return notification


# ============================================================================
# Upsert / Cancel
# ============================================================================

class TestUpsertAndCancel:
    """One pending row per session."""

    def test_upsert_replaces_pending_row(self, db_session, scheduler, pomodoro, test_user, t0):
        first = schedule(scheduler, db_session, pomodoro, test_user, t0 + timedelta(minutes=25))
        second = schedule(
            scheduler, db_session, pomodoro, test_user, t0 + timedelta(minutes=30),
            title="Break Over - Time to Focus!",
        )

        pending = scheduler.get_pending_for_session(db_session, pomodoro.id)

        assert pending.id == second.id
        assert pending.title == "Break Over - Time to Focus!"
        db_session.refresh(first)
        assert first.cancelled is True
        assert first.sent is False

    def test_cancel_for_session_counts_rows(self, db_session, scheduler, pomodoro, test_user, t0):
        schedule(scheduler, db_session, pomodoro, test_user, t0)

        assert scheduler.cancel_for_session(db_session, pomodoro.id) == 1
        db_session.commit()
        assert scheduler.cancel_for_session(db_session, pomodoro.id) == 0
        assert scheduler.get_pending_for_session(db_session, pomodoro.id) is None

    def test_second_pending_row_violates_unique_index(
        self, db_session, pomodoro, test_user, t0
    ):
        for minutes in (25, 30):
            db_session.add(
                ScheduledNotification(
                    session_id=pomodoro.id,
                    user_id=test_user.id,
                    title="Focus Complete - Take a Break!",
                    body="Great work!",
                    notification_type=NotificationType.PHASE_COMPLETE,
                    current_phase=CyclePhase.FOCUS,
                    scheduled_at=t0 + timedelta(minutes=minutes),
                )
            )

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


# ============================================================================
# Due Rows and Outcomes
# ============================================================================

class TestDeliveryBookkeeping:
    """find_due, mark_sent and record_failure."""

    def test_find_due_returns_only_pending_past_rows(
        self, db_session, scheduler, make_session, test_user, t0
    ):
        due = make_session()
        later = make_session()
        due_row = schedule(scheduler, db_session, due, test_user, t0)
        schedule(scheduler, db_session, later, test_user, t0 + timedelta(hours=1))

        found = scheduler.find_due(db_session, t0 + timedelta(minutes=1))

        assert [row.id for row in found] == [due_row.id]

    def test_find_due_orders_oldest_first(
        self, db_session, scheduler, make_session, test_user, t0
    ):
        newer = schedule(scheduler, db_session, make_session(), test_user, t0 + timedelta(minutes=5))
        older = schedule(scheduler, db_session, make_session(), test_user, t0)

        found = scheduler.find_due(db_session, t0 + timedelta(minutes=10))

        assert [row.id for row in found] == [older.id, newer.id]

    def test_mark_sent_is_idempotent(self, db_session, scheduler, pomodoro, test_user, t0):
        row = schedule(scheduler, db_session, pomodoro, test_user, t0)

        scheduler.mark_sent(db_session, row.id, t0 + timedelta(seconds=3))
        db_session.commit()
        scheduler.mark_sent(db_session, row.id, t0 + timedelta(seconds=9))
        db_session.commit()

        db_session.refresh(row)
        assert row.sent is True
        assert row.sent_at == t0 + timedelta(seconds=3)
        assert scheduler.find_due(db_session, t0 + timedelta(hours=1)) == []

    def test_mark_sent_leaves_cancelled_row_untouched(
        self, db_session, scheduler, pomodoro, test_user, t0
    ):
        row = schedule(scheduler, db_session, pomodoro, test_user, t0)
        scheduler.cancel_for_session(db_session, pomodoro.id)
        db_session.commit()

        scheduler.mark_sent(db_session, row.id, t0 + timedelta(seconds=3))
        db_session.commit()

        db_session.refresh(row)
        assert row.cancelled is True
        assert row.sent is False
        assert row.sent_at is None

    def test_mark_sent_unknown_row(self, db_session, scheduler, pomodoro):
        assert scheduler.mark_sent(db_session, pomodoro.id, datetime(2026, 1, 1)) is None

    def test_transient_failures_never_drop_row(
        self, db_session, scheduler, pomodoro, test_user, t0
    ):
        row = schedule(scheduler, db_session, pomodoro, test_user, t0)

        for _ in range(5):
            scheduler.record_failure(
                db_session, row.id, "timeout", permanent=False, max_attempts=3
            )
            db_session.commit()

        db_session.refresh(row)
        assert row.is_pending
        assert row.attempts == 5
        assert row.last_error == "timeout"

    def test_permanent_failures_drop_row_at_limit(
        self, db_session, scheduler, pomodoro, test_user, t0
    ):
        row = schedule(scheduler, db_session, pomodoro, test_user, t0)

        scheduler.record_failure(db_session, row.id, "410", permanent=True, max_attempts=2)
        db_session.commit()
        db_session.refresh(row)
        assert row.is_pending

        scheduler.record_failure(db_session, row.id, "410", permanent=True, max_attempts=2)
        db_session.commit()
        db_session.refresh(row)
        assert row.cancelled is True

    def test_only_permanent_failures_count_towards_limit(
        self, db_session, scheduler, pomodoro, test_user, t0
    ):
        row = schedule(scheduler, db_session, pomodoro, test_user, t0)
        for _ in range(2):
            scheduler.record_failure(db_session, row.id, "503", permanent=False, max_attempts=3)
        scheduler.record_failure(db_session, row.id, "410", permanent=True, max_attempts=3)
        db_session.commit()

        db_session.refresh(row)
        assert row.is_pending
        assert row.attempts == 3
        assert row.permanent_failures == 1
        assert row.last_error == "410"

    def test_failure_on_cancelled_row_is_ignored(
        self, db_session, scheduler, pomodoro, test_user, t0
    ):
        row = schedule(scheduler, db_session, pomodoro, test_user, t0)
        scheduler.cancel_for_session(db_session, pomodoro.id)
        db_session.commit()

        scheduler.record_failure(db_session, row.id, "timeout", permanent=False, max_attempts=3)
        db_session.commit()

        db_session.refresh(row)
        assert row.attempts == 0


# ============================================================================
# Purge
# ============================================================================

class TestPurge:
    """purge_older_than keeps pending rows regardless of age."""

    def test_purge_keeps_pending_and_recent(
        self, db_session, scheduler, make_session, test_user, t0
    ):
        old = t0 - timedelta(days=30)
        sent_session = make_session()
        pending_session = make_session()
        sent_row = schedule(scheduler, db_session, sent_session, test_user, old)
        sent_row.created_at = old
        scheduler.mark_sent(db_session, sent_row.id, old)
        pending_row = schedule(scheduler, db_session, pending_session, test_user, old)
        pending_row.created_at = old
        db_session.add_all([sent_row, pending_row])
        db_session.commit()
        pending_id = pending_row.id

        deleted = scheduler.purge_older_than(db_session, t0 - timedelta(days=7))
        db_session.commit()

        assert deleted == 1
        db_session.expire_all()
        remaining = db_session.exec(select(ScheduledNotification)).all()
        assert [row.id for row in remaining] == [pending_id]


# ============================================================================
# Sync With Session State
# ============================================================================

class TestSyncForSession:
    """sync_for_session mirrors the session's boundary."""

    def test_running_session_gets_row_at_boundary(
        self, db_session, scheduler, pomodoro, test_user, t0
    ):
        pomodoro.start(t0)

        row = scheduler.sync_for_session(db_session, pomodoro, test_user.id)

        assert row.scheduled_at == t0 + timedelta(minutes=25)
        assert row.current_phase == CyclePhase.FOCUS
        assert row.activity_id == pomodoro.activity_id

    def test_paused_session_has_no_row(self, db_session, scheduler, pomodoro, test_user, t0):
        pomodoro.start(t0)
        scheduler.sync_for_session(db_session, pomodoro, test_user.id)
        pomodoro.pause(t0 + timedelta(minutes=3))

        assert scheduler.sync_for_session(db_session, pomodoro, test_user.id) is None
        assert scheduler.get_pending_for_session(db_session, pomodoro.id) is None


# ============================================================================
# Phase Message Copy
# ============================================================================

def session_in(phase: CyclePhase, **overrides) -> PomodoroSession:
    values = {
        "session_type": SessionType.CLASSIC,
        "total_cycles": 4,
        "status": SessionStatus.IN_PROGRESS,
        "current_phase": phase,
    }
    values.update(overrides)
    return PomodoroSession(**values)


class TestBuildPhaseMessage:
    """Notification text for each boundary."""

    def test_focus_before_short_break(self):
        message = build_phase_message(session_in(CyclePhase.FOCUS, break_minutes=7))

        assert message.title == "Focus Complete - Take a Break!"
        assert message.body == (
            "Great work! 25 minutes of focus done. Time for a 7 minute break."
        )
        assert message.notification_type == NotificationType.PHASE_COMPLETE

    def test_focus_before_long_break(self):
        message = build_phase_message(
            session_in(CyclePhase.FOCUS, cycles_completed=3, long_break_minutes=20)
        )

        assert message.title == "Focus Complete - Long Break Time!"
        assert "20 minute long break" in message.body

    def test_break_over(self):
        message = build_phase_message(session_in(CyclePhase.BREAK, focus_minutes=50))

        assert message.title == "Break Over - Time to Focus!"
        assert message.body == "Break complete. Ready for 50 minutes of focus?"

    def test_long_break_over(self):
        message = build_phase_message(
            session_in(CyclePhase.LONG_BREAK, cycles_completed=3, total_cycles=8)
        )

        assert message.title == "Long Break Over - Back to Focus!"

    @pytest.mark.parametrize("total,expected", [(1, "1 cycle."), (3, "3 cycles.")])
    def test_last_break_completes_session(self, total, expected):
        message = build_phase_message(
            session_in(CyclePhase.BREAK, total_cycles=total, cycles_completed=total - 1)
        )

        assert message.title == "Session Complete!"
        assert expected in message.body
        assert message.notification_type == NotificationType.SESSION_COMPLETE

    def test_freestyle_break_never_completes(self):
        message = build_phase_message(
            session_in(
                CyclePhase.BREAK,
                session_type=SessionType.FREESTYLE,
                total_cycles=None,
                cycles_completed=40,
            )
        )

        assert message.notification_type == NotificationType.PHASE_COMPLETE
