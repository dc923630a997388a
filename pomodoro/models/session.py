"""PomodoroSession aggregate: the focus/break state machine.

A session cycles FOCUS -> BREAK (or LONG_BREAK) -> FOCUS ... until it is
finished, cancelled, or, for CLASSIC sessions, the configured number of
cycles has been completed. Every transition takes ``now`` from the caller so
the aggregate itself never reads the wall clock.

``phase_ends_at`` is the phase boundary used for notification scheduling.
It only exists while the session is IN_PROGRESS; pausing converts it into
``remaining_seconds_at_pause`` and resuming converts it back.
"""

from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from pomodoro.clock import (
    from_seconds,
    minutes,
    remaining_until,
    to_seconds,
    utcnow,
    whole_seconds,
)
from pomodoro.errors import EditLockedError, InvalidStateTransition, SessionValidationError

# Allowed timing ranges, inclusive
FOCUS_MINUTES_RANGE = (5, 90)
BREAK_MINUTES_RANGE = (2, 10)
LONG_BREAK_MINUTES_RANGE = (15, 30)
LONG_BREAK_INTERVAL_RANGE = (2, 10)
TOTAL_CYCLES_RANGE = (1, 20)


class SessionType(str, Enum):
    """Session modes."""

    CLASSIC = "CLASSIC"  # fixed number of cycles
    FREESTYLE = "FREESTYLE"  # open-ended


class SessionStatus(str, Enum):
    """Session lifecycle status."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class CyclePhase(str, Enum):
    """Phase within a cycle. LONG_BREAK is the long variant of BREAK."""

    FOCUS = "FOCUS"
    BREAK = "BREAK"
    LONG_BREAK = "LONG_BREAK"

    @property
    def is_break(self) -> bool:
        return self != CyclePhase.FOCUS


ACTIVE_STATUSES = (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED)
TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


def _check_range(label: str, field: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if value < low or value > high:
        raise SessionValidationError(
            f"{label} must be between {low} and {high}", field=field
        )


def validate_timing(
    focus_minutes: int,
    break_minutes: int,
    long_break_minutes: int,
    long_break_interval_cycles: int,
    session_type: "SessionType",
    total_cycles: int | None,
) -> None:
    """Validate timing parameters.

    Raises:
        SessionValidationError: If any value is outside its allowed range
    """
    _check_range("Focus duration", "focus_minutes", focus_minutes, FOCUS_MINUTES_RANGE)
    _check_range("Break duration", "break_minutes", break_minutes, BREAK_MINUTES_RANGE)
    _check_range(
        "Long break duration",
        "long_break_minutes",
        long_break_minutes,
        LONG_BREAK_MINUTES_RANGE,
    )
    _check_range(
        "Long break interval",
        "long_break_interval_cycles",
        long_break_interval_cycles,
        LONG_BREAK_INTERVAL_RANGE,
    )

    if session_type == SessionType.CLASSIC:
        if total_cycles is None:
            raise SessionValidationError(
                "Classic sessions require a total cycle count", field="total_cycles"
            )
        _check_range("Total cycles", "total_cycles", total_cycles, TOTAL_CYCLES_RANGE)
    elif total_cycles is not None:
        raise SessionValidationError(
            "Freestyle sessions do not have a total cycle count", field="total_cycles"
        )


class SessionTiming(SQLModel):
    """Timing parameters shared by the table model and the create schema."""

    focus_minutes: int = 25
    break_minutes: int = 5
    long_break_minutes: int = 15
    long_break_interval_cycles: int = 4


class PomodoroSession(SessionTiming, table=True):
    """Pomodoro session database model and aggregate root."""

    __tablename__ = "pomodoro_sessions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    activity_id: UUID = Field(foreign_key="activities.id", index=True)
    session_type: SessionType = Field(default=SessionType.CLASSIC)
    status: SessionStatus = Field(default=SessionStatus.NOT_STARTED, index=True)
    current_phase: CyclePhase = Field(default=CyclePhase.FOCUS)
    total_cycles: int | None = Field(default=None)

    cycles_completed: int = Field(default=0)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    phase_ends_at: datetime | None = Field(default=None, index=True)
    remaining_seconds_at_pause: float | None = Field(default=None)
    phase_notified: bool = Field(default=False)

    note: str | None = Field(default=None, max_length=2000)
    version: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_break(self) -> bool:
        return self.current_phase.is_break

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def phase_duration(self, phase: CyclePhase | None = None) -> timedelta:
        """Configured length of ``phase`` (defaults to the current phase)."""
        phase = phase or self.current_phase
        if phase == CyclePhase.FOCUS:
            return minutes(self.focus_minutes)
        if phase == CyclePhase.LONG_BREAK:
            return minutes(self.long_break_minutes)
        return minutes(self.break_minutes)

    def long_break_due(self) -> bool:
        """Whether the break after the current focus phase is a long one."""
        return (self.cycles_completed + 1) % self.long_break_interval_cycles == 0

    def next_break_phase(self) -> CyclePhase:
        return CyclePhase.LONG_BREAK if self.long_break_due() else CyclePhase.BREAK

    def completes_session_after_break(self) -> bool:
        """Whether finishing the current break ends a CLASSIC session."""
        return (
            self.session_type == SessionType.CLASSIC
            and self.total_cycles is not None
            and self.cycles_completed + 1 >= self.total_cycles
        )

    def remaining(self, now: datetime) -> timedelta:
        """Time left in the current phase."""
        if self.status == SessionStatus.IN_PROGRESS and self.phase_ends_at is not None:
            return remaining_until(self.phase_ends_at, now)
        if self.status == SessionStatus.PAUSED and self.remaining_seconds_at_pause is not None:
            return from_seconds(self.remaining_seconds_at_pause)
        if self.status == SessionStatus.NOT_STARTED:
            return self.phase_duration()
        return timedelta(0)

    def elapsed(self, now: datetime) -> timedelta:
        """Time already spent in the current phase."""
        if self.is_terminal or self.status == SessionStatus.NOT_STARTED:
            return timedelta(0)
        spent = self.phase_duration() - self.remaining(now)
        return max(spent, timedelta(0))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, now: datetime) -> None:
        self._require("start", SessionStatus.NOT_STARTED)
        self.status = SessionStatus.IN_PROGRESS
        self.started_at = now
        self._begin_phase(CyclePhase.FOCUS, now)
        self._touch(now)

    def pause(self, now: datetime, note: str | None = None) -> None:
        self._require("pause", SessionStatus.IN_PROGRESS)
        left = remaining_until(self.phase_ends_at, now) if self.phase_ends_at else timedelta(0)
        self.remaining_seconds_at_pause = to_seconds(left)
        self.phase_ends_at = None
        self.status = SessionStatus.PAUSED
        self._apply_note(note)
        self._touch(now)

    def resume(self, now: datetime) -> None:
        self._require("resume", SessionStatus.PAUSED)
        if self.remaining_seconds_at_pause is None:
            left = self.phase_duration()
        else:
            left = from_seconds(self.remaining_seconds_at_pause)
        self.status = SessionStatus.IN_PROGRESS
        self.phase_ends_at = now + left
        self.remaining_seconds_at_pause = None
        # A boundary already announced before the pause is not announced again
        self.phase_notified = self.phase_notified and left <= timedelta(0)
        self._touch(now)

    def stop(self, now: datetime, note: str | None = None) -> None:
        """Discard the in-flight cycle and rewind to the start of a focus phase.

        Completed cycles are kept. A session without completed cycles goes
        back to NOT_STARTED; otherwise it waits in PAUSED with a full focus
        phase ahead.
        """
        self._require("stop", *ACTIVE_STATUSES)
        self.current_phase = CyclePhase.FOCUS
        self.phase_ends_at = None
        self.phase_notified = False
        if self.cycles_completed == 0:
            self.status = SessionStatus.NOT_STARTED
            self.started_at = None
            self.remaining_seconds_at_pause = None
        else:
            self.status = SessionStatus.PAUSED
            self.remaining_seconds_at_pause = to_seconds(self.phase_duration(CyclePhase.FOCUS))
        self._apply_note(note)
        self._touch(now)

    def cancel(self, now: datetime) -> None:
        self._require("cancel", *ACTIVE_STATUSES)
        self.status = SessionStatus.ABANDONED
        self.phase_ends_at = None
        self.remaining_seconds_at_pause = None
        self._touch(now)

    def complete_phase(self, now: datetime, note: str | None = None) -> CyclePhase:
        """Close the current phase and open the next one.

        Returns:
            The phase that just ended
        """
        self._require("complete phase of", SessionStatus.IN_PROGRESS)
        ended = self.current_phase

        if ended == CyclePhase.FOCUS:
            self._begin_phase(self.next_break_phase(), now)
        else:
            self.cycles_completed += 1
            if (
                self.session_type == SessionType.CLASSIC
                and self.total_cycles is not None
                and self.cycles_completed >= self.total_cycles
            ):
                self.current_phase = CyclePhase.FOCUS
                self._complete(now)
            else:
                self._begin_phase(CyclePhase.FOCUS, now)

        self._apply_note(note)
        self._touch(now)
        return ended

    def skip_phase(self, now: datetime) -> CyclePhase:
        """Jump to the next phase of a FREESTYLE session without waiting it out.

        Skipping a break counts the cycle. A paused session stays paused with
        the full next phase ahead.

        Returns:
            The phase that was skipped
        """
        self._require("skip phase of", *ACTIVE_STATUSES)
        if self.session_type != SessionType.FREESTYLE:
            raise InvalidStateTransition(
                "Phase skipping is allowed only for FREESTYLE sessions",
                status=self.status.value,
            )
        skipped = self.current_phase

        if skipped == CyclePhase.FOCUS:
            upcoming = self.next_break_phase()
        else:
            self.cycles_completed += 1
            upcoming = CyclePhase.FOCUS

        if self.status == SessionStatus.IN_PROGRESS:
            self._begin_phase(upcoming, now)
        else:
            self.current_phase = upcoming
            self.remaining_seconds_at_pause = to_seconds(self.phase_duration(upcoming))
            self.phase_notified = False
        self._touch(now)
        return skipped

    def finish(self, now: datetime, note: str | None = None) -> None:
        """Complete the session early.

        A FREESTYLE session finished during a break counts the running cycle;
        a partial focus phase is never counted.
        """
        self._require("finish", SessionStatus.IN_PROGRESS)
        if self.session_type == SessionType.FREESTYLE and self.is_break:
            self.cycles_completed += 1
        self._complete(now)
        self._apply_note(note)
        self._touch(now)

    def update_timing(
        self,
        now: datetime,
        focus_minutes: int | None = None,
        break_minutes: int | None = None,
        long_break_minutes: int | None = None,
        long_break_interval_cycles: int | None = None,
        total_cycles: int | None = None,
    ) -> None:
        """Change timing parameters. Only allowed before the session starts."""
        if self.status != SessionStatus.NOT_STARTED:
            raise EditLockedError(self.status.value)

        focus = self.focus_minutes if focus_minutes is None else focus_minutes
        short_break = self.break_minutes if break_minutes is None else break_minutes
        long_break = self.long_break_minutes if long_break_minutes is None else long_break_minutes
        interval = (
            self.long_break_interval_cycles
            if long_break_interval_cycles is None
            else long_break_interval_cycles
        )
        cycles = self.total_cycles if total_cycles is None else total_cycles

        validate_timing(focus, short_break, long_break, interval, self.session_type, cycles)

        self.focus_minutes = focus
        self.break_minutes = short_break
        self.long_break_minutes = long_break
        self.long_break_interval_cycles = interval
        self.total_cycles = cycles
        self._touch(now)

    def set_note(self, text: str | None, now: datetime) -> None:
        self.note = text
        self._touch(now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, action: str, *allowed: SessionStatus) -> None:
        if self.status not in allowed:
            raise InvalidStateTransition(
                f"Cannot {action} session in state {self.status.value}",
                status=self.status.value,
            )

    def _begin_phase(self, phase: CyclePhase, now: datetime) -> None:
        self.current_phase = phase
        self.phase_ends_at = now + self.phase_duration(phase)
        self.remaining_seconds_at_pause = None
        self.phase_notified = False

    def _complete(self, now: datetime) -> None:
        self.status = SessionStatus.COMPLETED
        self.completed_at = now
        self.phase_ends_at = None
        self.remaining_seconds_at_pause = None

    def _apply_note(self, note: str | None) -> None:
        if note is not None:
            self.note = note

    def _touch(self, now: datetime) -> None:
        self.updated_at = now


# -----------------------------------------------------------------------------
# Request / response schemas
# -----------------------------------------------------------------------------


class SessionCreate(SessionTiming):
    """Schema for session creation."""

    session_type: SessionType = SessionType.CLASSIC
    total_cycles: int | None = None
    note: str | None = Field(default=None, max_length=2000)


class SessionTimingUpdate(SQLModel):
    """Schema for timing edits (only honoured while NOT_STARTED)."""

    focus_minutes: int | None = None
    break_minutes: int | None = None
    long_break_minutes: int | None = None
    long_break_interval_cycles: int | None = None
    total_cycles: int | None = None
    expected_version: int | None = None


class SessionCommandRequest(SQLModel):
    """Optional body accepted by lifecycle commands."""

    note: str | None = Field(default=None, max_length=2000)
    expected_version: int | None = None


class SessionNoteUpdate(SQLModel):
    """Schema for replacing the session note."""

    note: str | None = Field(default=None, max_length=2000)
    expected_version: int | None = None


class SessionResponse(SQLModel):
    """Public projection of a session."""

    id: UUID
    activity_id: UUID
    session_type: SessionType
    status: SessionStatus
    current_phase: CyclePhase
    focus_minutes: int
    break_minutes: int
    long_break_minutes: int
    long_break_interval_cycles: int
    total_cycles: int | None
    cycles_completed: int
    remaining_phase_seconds: int
    elapsed_phase_seconds: int
    phase_ends_at: datetime | None
    phase_notified: bool
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    note: str | None
    version: int

    @classmethod
    def from_session(cls, session: PomodoroSession, now: datetime) -> "SessionResponse":
        return cls(
            id=session.id,
            activity_id=session.activity_id,
            session_type=session.session_type,
            status=session.status,
            current_phase=session.current_phase,
            focus_minutes=session.focus_minutes,
            break_minutes=session.break_minutes,
            long_break_minutes=session.long_break_minutes,
            long_break_interval_cycles=session.long_break_interval_cycles,
            total_cycles=session.total_cycles,
            cycles_completed=session.cycles_completed,
            remaining_phase_seconds=whole_seconds(session.remaining(now)),
            elapsed_phase_seconds=whole_seconds(session.elapsed(now)),
            phase_ends_at=session.phase_ends_at,
            phase_notified=session.phase_notified,
            started_at=session.started_at,
            completed_at=session.completed_at,
            created_at=session.created_at,
            updated_at=session.updated_at,
            note=session.note,
            version=session.version,
        )


class SessionListResponse(SQLModel):
    """Schema for session list response."""

    sessions: list[SessionResponse]
    total: int
