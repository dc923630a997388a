"""Tests for the PomodoroSession state machine.

Tests cover:
- start / pause / resume / stop / cancel transitions
- Phase completion, long-break cadence and CLASSIC auto-completion
- finish() cycle counting and FREESTYLE skip_phase()
- Timing edit lock and range validation
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from pomodoro.errors import (
    EditLockedError,
    InvalidStateTransition,
    SessionValidationError,
)
from pomodoro.models.session import (
    CyclePhase,
    PomodoroSession,
    SessionStatus,
    SessionType,
)

T0 = datetime(2026, 1, 5, 9, 0, 0)


def new_session(**overrides) -> PomodoroSession:
    values = {
        "activity_id": uuid4(),
        "session_type": SessionType.CLASSIC,
        "total_cycles": 4,
        "focus_minutes": 25,
        "break_minutes": 5,
        "long_break_minutes": 15,
        "long_break_interval_cycles": 4,
        "created_at": T0,
        "updated_at": T0,
    }
    values.update(overrides)
    return PomodoroSession(**values)


def at(minutes: float = 0, seconds: float = 0) -> datetime:
    return T0 + timedelta(minutes=minutes, seconds=seconds)


# ============================================================================
# Start
# ============================================================================

class TestStart:
    """Tests for start()."""

    def test_start_opens_first_focus_phase(self):
        """start() moves to IN_PROGRESS with a full focus phase ahead."""
        pomodoro = new_session()

        pomodoro.start(T0)

        assert pomodoro.status == SessionStatus.IN_PROGRESS
        assert pomodoro.current_phase == CyclePhase.FOCUS
        assert pomodoro.started_at == T0
        assert pomodoro.phase_ends_at == at(25)
        assert pomodoro.phase_notified is False
        assert pomodoro.updated_at == T0

    def test_start_twice_fails_with_status_in_message(self):
        """Starting a running session is rejected."""
        pomodoro = new_session()
        pomodoro.start(T0)

        with pytest.raises(InvalidStateTransition) as exc_info:
            pomodoro.start(at(1))

        assert "IN_PROGRESS" in str(exc_info.value)

    def test_start_terminal_session_fails(self):
        """Completed and abandoned sessions cannot be restarted."""
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.cancel(at(1))

        with pytest.raises(InvalidStateTransition, match="ABANDONED"):
            pomodoro.start(at(2))


# ============================================================================
# Pause / Resume
# ============================================================================

class TestPauseResume:
    """Tests for pause() and resume()."""

    def test_pause_captures_remaining_time(self):
        """pause() stores what is left and drops the boundary."""
        pomodoro = new_session()
        pomodoro.start(T0)

        pomodoro.pause(at(10), note="phone call")

        assert pomodoro.status == SessionStatus.PAUSED
        assert pomodoro.phase_ends_at is None
        assert pomodoro.remaining_seconds_at_pause == 15 * 60
        assert pomodoro.remaining(at(500)) == timedelta(minutes=15)
        assert pomodoro.note == "phone call"

    @pytest.mark.parametrize(
        "elapsed,pause_length",
        [
            (timedelta(minutes=10), timedelta(minutes=50)),
            (timedelta(seconds=1), timedelta(hours=9)),
            (timedelta(minutes=24, seconds=59, milliseconds=500), timedelta(seconds=3)),
            (timedelta(minutes=7, microseconds=250), timedelta(0)),
        ],
    )
    def test_remaining_time_is_invariant_under_pause_length(self, elapsed, pause_length):
        """After resume, the boundary is exactly focus - elapsed away."""
        pomodoro = new_session()
        pomodoro.start(T0)

        pomodoro.pause(T0 + elapsed)
        resumed_at = T0 + elapsed + pause_length
        pomodoro.resume(resumed_at)

        assert pomodoro.status == SessionStatus.IN_PROGRESS
        assert pomodoro.phase_ends_at - resumed_at == timedelta(minutes=25) - elapsed
        assert pomodoro.remaining_seconds_at_pause is None
        assert pomodoro.phase_notified is False

    def test_pause_during_break_keeps_phase(self):
        """Pausing a break resumes the same break."""
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.complete_phase(at(25))

        pomodoro.pause(at(27))
        pomodoro.resume(at(40))

        assert pomodoro.current_phase == CyclePhase.BREAK
        assert pomodoro.phase_ends_at == at(43)

    def test_pause_requires_running_session(self):
        pomodoro = new_session()

        with pytest.raises(InvalidStateTransition, match="NOT_STARTED"):
            pomodoro.pause(T0)

    def test_resume_requires_paused_session(self):
        pomodoro = new_session()
        pomodoro.start(T0)

        with pytest.raises(InvalidStateTransition, match="IN_PROGRESS"):
            pomodoro.resume(at(1))

    def test_resume_after_announced_boundary_keeps_notified_flag(self):
        """A boundary that was already pushed is not pushed again on resume."""
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.phase_notified = True

        pomodoro.pause(at(30))
        pomodoro.resume(at(40))

        assert pomodoro.phase_ends_at == at(40)
        assert pomodoro.phase_notified is True

    def test_resume_with_time_left_clears_notified_flag(self):
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.phase_notified = True

        pomodoro.pause(at(10))
        pomodoro.resume(at(11))

        assert pomodoro.phase_notified is False


# ============================================================================
# Phase Completion
# ============================================================================

class TestCompletePhase:
    """Tests for complete_phase()."""

    def test_reference_scenario(self):
        """25/5/15 with a long break every 4 cycles."""
        pomodoro = new_session(total_cycles=None, session_type=SessionType.FREESTYLE)
        pomodoro.start(T0)
        assert pomodoro.phase_ends_at == at(25)

        ended = pomodoro.complete_phase(at(25))
        assert ended == CyclePhase.FOCUS
        assert pomodoro.current_phase == CyclePhase.BREAK
        assert pomodoro.phase_ends_at == at(30)

        ended = pomodoro.complete_phase(at(30))
        assert ended == CyclePhase.BREAK
        assert pomodoro.cycles_completed == 1
        assert pomodoro.current_phase == CyclePhase.FOCUS
        assert pomodoro.phase_ends_at == at(55)

        now = at(55)
        for _ in range(2):
            pomodoro.complete_phase(now)
            assert pomodoro.current_phase == CyclePhase.BREAK
            now += timedelta(minutes=5)
            pomodoro.complete_phase(now)
            now += timedelta(minutes=25)
        assert pomodoro.cycles_completed == 3

        pomodoro.complete_phase(now)

        assert pomodoro.current_phase == CyclePhase.LONG_BREAK
        assert pomodoro.phase_ends_at == now + timedelta(minutes=15)

    @pytest.mark.parametrize("interval", range(2, 11))
    def test_long_break_cadence(self, interval):
        """The long break is chosen exactly when (cycles + 1) % interval == 0."""
        for cycles in range(0, 51):
            pomodoro = new_session(
                session_type=SessionType.FREESTYLE,
                total_cycles=None,
                long_break_interval_cycles=interval,
            )
            pomodoro.start(T0)
            pomodoro.cycles_completed = cycles

            pomodoro.complete_phase(at(25))

            if (cycles + 1) % interval == 0:
                assert pomodoro.current_phase == CyclePhase.LONG_BREAK
                assert pomodoro.phase_ends_at == at(25 + 15)
            else:
                assert pomodoro.current_phase == CyclePhase.BREAK
                assert pomodoro.phase_ends_at == at(25 + 5)

    @pytest.mark.parametrize("total", [1, 2, 5])
    def test_classic_completes_on_last_break(self, total):
        """A CLASSIC session completes when its Nth break ends, never counting past N."""
        pomodoro = new_session(total_cycles=total)
        now = T0
        pomodoro.start(now)

        for cycle in range(1, total + 1):
            now += timedelta(minutes=25)
            pomodoro.complete_phase(now)
            assert pomodoro.is_break
            assert pomodoro.status == SessionStatus.IN_PROGRESS

            now += timedelta(minutes=15)
            pomodoro.complete_phase(now)
            assert pomodoro.cycles_completed == cycle

        assert pomodoro.status == SessionStatus.COMPLETED
        assert pomodoro.completed_at == now
        assert pomodoro.phase_ends_at is None
        assert pomodoro.cycles_completed == total

        with pytest.raises(InvalidStateTransition, match="COMPLETED"):
            pomodoro.complete_phase(now)
        assert pomodoro.cycles_completed == total

    def test_complete_phase_requires_running_session(self):
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.pause(at(3))

        with pytest.raises(InvalidStateTransition, match="PAUSED"):
            pomodoro.complete_phase(at(4))

    def test_complete_phase_resets_notified_flag(self):
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.phase_notified = True

        pomodoro.complete_phase(at(25))

        assert pomodoro.phase_notified is False


# ============================================================================
# Finish / Stop / Cancel
# ============================================================================

class TestFinish:
    """Tests for finish()."""

    def test_freestyle_finish_in_break_counts_cycle(self):
        pomodoro = new_session(session_type=SessionType.FREESTYLE, total_cycles=None)
        pomodoro.start(T0)
        pomodoro.complete_phase(at(25))

        pomodoro.finish(at(27), note="done for today")

        assert pomodoro.status == SessionStatus.COMPLETED
        assert pomodoro.cycles_completed == 1
        assert pomodoro.completed_at == at(27)
        assert pomodoro.note == "done for today"

    def test_freestyle_finish_in_focus_discards_partial_cycle(self):
        pomodoro = new_session(session_type=SessionType.FREESTYLE, total_cycles=None)
        pomodoro.start(T0)

        pomodoro.finish(at(12))

        assert pomodoro.status == SessionStatus.COMPLETED
        assert pomodoro.cycles_completed == 0

    def test_classic_finish_never_counts_partial_cycle(self):
        pomodoro = new_session(total_cycles=3)
        pomodoro.start(T0)
        pomodoro.complete_phase(at(25))

        pomodoro.finish(at(26))

        assert pomodoro.status == SessionStatus.COMPLETED
        assert pomodoro.cycles_completed == 0

    def test_finish_requires_running_session(self):
        pomodoro = new_session()

        with pytest.raises(InvalidStateTransition, match="NOT_STARTED"):
            pomodoro.finish(T0)


class TestSkipPhase:
    """Tests for skip_phase() on FREESTYLE sessions."""

    def freestyle(self, **overrides) -> PomodoroSession:
        return new_session(session_type=SessionType.FREESTYLE, total_cycles=None, **overrides)

    def test_skip_focus_opens_break(self):
        pomodoro = self.freestyle()
        pomodoro.start(T0)
        pomodoro.phase_notified = True

        skipped = pomodoro.skip_phase(at(3))

        assert skipped == CyclePhase.FOCUS
        assert pomodoro.current_phase == CyclePhase.BREAK
        assert pomodoro.cycles_completed == 0
        assert pomodoro.phase_ends_at == at(8)
        assert pomodoro.phase_notified is False
        assert pomodoro.updated_at == at(3)

    def test_skip_focus_honours_long_break_rule(self):
        pomodoro = self.freestyle(long_break_interval_cycles=2)
        pomodoro.start(T0)
        pomodoro.skip_phase(at(1))
        pomodoro.skip_phase(at(2))

        pomodoro.skip_phase(at(3))

        assert pomodoro.current_phase == CyclePhase.LONG_BREAK
        assert pomodoro.phase_ends_at == at(18)

    def test_skip_break_counts_cycle(self):
        pomodoro = self.freestyle()
        pomodoro.start(T0)
        pomodoro.complete_phase(at(25))

        skipped = pomodoro.skip_phase(at(26))

        assert skipped == CyclePhase.BREAK
        assert pomodoro.current_phase == CyclePhase.FOCUS
        assert pomodoro.cycles_completed == 1
        assert pomodoro.phase_ends_at == at(51)
        assert pomodoro.status == SessionStatus.IN_PROGRESS

    def test_skip_while_paused_stays_paused(self):
        pomodoro = self.freestyle()
        pomodoro.start(T0)
        pomodoro.pause(at(10))

        pomodoro.skip_phase(at(11))

        assert pomodoro.status == SessionStatus.PAUSED
        assert pomodoro.current_phase == CyclePhase.BREAK
        assert pomodoro.phase_ends_at is None
        assert pomodoro.remaining(at(99)) == timedelta(minutes=5)

    def test_classic_session_cannot_skip(self):
        pomodoro = new_session()
        pomodoro.start(T0)

        with pytest.raises(InvalidStateTransition, match="FREESTYLE"):
            pomodoro.skip_phase(at(1))

        assert pomodoro.current_phase == CyclePhase.FOCUS

    def test_skip_requires_active_session(self):
        pomodoro = self.freestyle()

        with pytest.raises(InvalidStateTransition, match="NOT_STARTED"):
            pomodoro.skip_phase(T0)


class TestStop:
    """Tests for stop()."""

    def test_stop_without_completed_cycles_returns_to_not_started(self):
        pomodoro = new_session()
        pomodoro.start(T0)

        pomodoro.stop(at(10))

        assert pomodoro.status == SessionStatus.NOT_STARTED
        assert pomodoro.started_at is None
        assert pomodoro.cycles_completed == 0
        assert pomodoro.current_phase == CyclePhase.FOCUS
        assert pomodoro.phase_ends_at is None
        assert pomodoro.remaining(at(10)) == timedelta(minutes=25)

    def test_stop_with_completed_cycles_parks_at_fresh_focus(self):
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.complete_phase(at(25))
        pomodoro.complete_phase(at(30))
        pomodoro.complete_phase(at(55))

        pomodoro.stop(at(56))

        assert pomodoro.status == SessionStatus.PAUSED
        assert pomodoro.cycles_completed == 1
        assert pomodoro.current_phase == CyclePhase.FOCUS
        assert pomodoro.phase_ends_at is None
        assert pomodoro.remaining(at(56)) == timedelta(minutes=25)

        pomodoro.resume(at(60))
        assert pomodoro.phase_ends_at == at(85)

    def test_stop_requires_active_session(self):
        pomodoro = new_session()

        with pytest.raises(InvalidStateTransition, match="NOT_STARTED"):
            pomodoro.stop(T0)


class TestCancel:
    """Tests for cancel()."""

    @pytest.mark.parametrize("pause_first", [False, True])
    def test_cancel_abandons_active_session(self, pause_first):
        pomodoro = new_session()
        pomodoro.start(T0)
        if pause_first:
            pomodoro.pause(at(5))

        pomodoro.cancel(at(6))

        assert pomodoro.status == SessionStatus.ABANDONED
        assert pomodoro.phase_ends_at is None
        assert pomodoro.is_terminal

    def test_cancel_not_started_session_fails(self):
        pomodoro = new_session()

        with pytest.raises(InvalidStateTransition, match="NOT_STARTED"):
            pomodoro.cancel(T0)


# ============================================================================
# Timing Edits
# ============================================================================

class TestUpdateTiming:
    """Tests for update_timing()."""

    def test_update_timing_before_start(self):
        pomodoro = new_session()

        pomodoro.update_timing(
            at(1), focus_minutes=50, break_minutes=10, long_break_interval_cycles=2
        )

        assert pomodoro.focus_minutes == 50
        assert pomodoro.break_minutes == 10
        assert pomodoro.long_break_minutes == 15
        assert pomodoro.long_break_interval_cycles == 2
        assert pomodoro.updated_at == at(1)

    @pytest.mark.parametrize(
        "prepare",
        [
            lambda p: p.start(T0),
            lambda p: (p.start(T0), p.pause(at(1))),
            lambda p: (p.start(T0), p.cancel(at(1))),
            lambda p: (p.start(T0), p.finish(at(1))),
        ],
        ids=["in_progress", "paused", "abandoned", "completed"],
    )
    def test_update_timing_locked_after_start(self, prepare):
        pomodoro = new_session()
        prepare(pomodoro)

        with pytest.raises(EditLockedError) as exc_info:
            pomodoro.update_timing(at(2), focus_minutes=30)

        assert "Cannot edit session" in str(exc_info.value)
        assert pomodoro.status.value in str(exc_info.value)
        assert pomodoro.focus_minutes == 25

    def test_edit_lock_is_also_a_state_transition_error(self):
        pomodoro = new_session()
        pomodoro.start(T0)

        with pytest.raises(InvalidStateTransition):
            pomodoro.update_timing(at(1), focus_minutes=30)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("focus_minutes", 4),
            ("focus_minutes", 91),
            ("break_minutes", 1),
            ("break_minutes", 11),
            ("long_break_minutes", 14),
            ("long_break_minutes", 31),
            ("long_break_interval_cycles", 1),
            ("long_break_interval_cycles", 11),
            ("total_cycles", 21),
        ],
    )
    def test_update_timing_rejects_out_of_range(self, field, value):
        pomodoro = new_session()

        with pytest.raises(SessionValidationError) as exc_info:
            pomodoro.update_timing(at(1), **{field: value})

        assert exc_info.value.field == field
        assert getattr(pomodoro, field) != value

    def test_freestyle_rejects_cycle_count(self):
        pomodoro = new_session(session_type=SessionType.FREESTYLE, total_cycles=None)

        with pytest.raises(SessionValidationError, match="Freestyle"):
            pomodoro.update_timing(at(1), total_cycles=3)


# ============================================================================
# Derived Values
# ============================================================================

class TestDerivedValues:
    """Tests for remaining() and elapsed()."""

    def test_remaining_and_elapsed_while_running(self):
        pomodoro = new_session()
        pomodoro.start(T0)

        assert pomodoro.remaining(at(10)) == timedelta(minutes=15)
        assert pomodoro.elapsed(at(10)) == timedelta(minutes=10)

    def test_remaining_never_negative_past_boundary(self):
        pomodoro = new_session()
        pomodoro.start(T0)

        assert pomodoro.remaining(at(40)) == timedelta(0)
        assert pomodoro.elapsed(at(40)) == timedelta(minutes=25)

    def test_terminal_session_has_no_time_left(self):
        pomodoro = new_session()
        pomodoro.start(T0)
        pomodoro.finish(at(5))

        assert pomodoro.remaining(at(6)) == timedelta(0)
        assert pomodoro.elapsed(at(6)) == timedelta(0)
