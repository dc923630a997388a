"""Pomodoro session API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.responses import StreamingResponse

from pomodoro.api.deps import CurrentUser, DBSession, EventBroker, Sessions
from pomodoro.config import get_settings
from pomodoro.errors import NotFoundError
from pomodoro.models.session import (
    SessionCommandRequest,
    SessionCreate,
    SessionListResponse,
    SessionNoteUpdate,
    SessionResponse,
    SessionStatus,
    SessionTimingUpdate,
)

router = APIRouter(prefix="/api/activities/{activity_id}/sessions", tags=["Sessions"])


def _in_activity(response: SessionResponse, activity_id: UUID) -> SessionResponse:
    """Sessions addressed under another activity are reported as missing."""
    if response.activity_id != activity_id:
        raise NotFoundError("Session", response.id)
    return response


def _command_args(body: SessionCommandRequest | None) -> tuple[str | None, int | None]:
    if body is None:
        return None, None
    return body.note, body.expected_version


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_data: SessionCreate,
) -> SessionResponse:
    """Create a new session under an activity."""
    return sessions.create(session, activity_id, current_user.id, session_data)


@router.get("", response_model=SessionListResponse)
def list_sessions_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_status: SessionStatus | None = Query(
        default=None, alias="status", description="Filter by session status"
    ),
) -> SessionListResponse:
    """List the sessions of an activity."""
    items = sessions.list_for_activity(session, activity_id, current_user.id, session_status)
    return SessionListResponse(sessions=items, total=len(items))


@router.get("/{session_id}", response_model=SessionResponse)
def get_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
) -> SessionResponse:
    """Get a specific session."""
    return _in_activity(sessions.get(session, session_id, current_user.id), activity_id)


@router.post("/{session_id}/start", response_model=SessionResponse)
def start_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Start the first focus phase."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    _, expected_version = _command_args(body)
    return sessions.start(session, session_id, current_user.id, expected_version)


@router.post("/{session_id}/pause", response_model=SessionResponse)
def pause_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Pause the running phase."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    note, expected_version = _command_args(body)
    return sessions.pause(session, session_id, current_user.id, note, expected_version)


@router.post("/{session_id}/resume", response_model=SessionResponse)
def resume_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Resume a paused phase with the time that was left."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    _, expected_version = _command_args(body)
    return sessions.resume(session, session_id, current_user.id, expected_version)


@router.post("/{session_id}/stop", response_model=SessionResponse)
def stop_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Discard the running cycle."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    note, expected_version = _command_args(body)
    return sessions.stop(session, session_id, current_user.id, note, expected_version)


@router.post("/{session_id}/cancel", response_model=SessionResponse)
def cancel_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Abandon the session."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    _, expected_version = _command_args(body)
    return sessions.cancel(session, session_id, current_user.id, expected_version)


@router.post("/{session_id}/complete-phase", response_model=SessionResponse)
def complete_phase_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Close the running phase and move to the next one."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    note, expected_version = _command_args(body)
    return sessions.complete_phase(session, session_id, current_user.id, note, expected_version)


@router.post("/{session_id}/skip", response_model=SessionResponse)
def skip_phase_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Skip to the next phase of a freestyle session."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    _, expected_version = _command_args(body)
    return sessions.skip_phase(session, session_id, current_user.id, expected_version)


@router.post("/{session_id}/finish", response_model=SessionResponse)
def finish_session_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    body: SessionCommandRequest | None = None,
) -> SessionResponse:
    """Complete the session early."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    note, expected_version = _command_args(body)
    return sessions.finish(session, session_id, current_user.id, note, expected_version)


@router.patch("/{session_id}", response_model=SessionResponse)
def update_timing_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    timing: SessionTimingUpdate,
) -> SessionResponse:
    """Edit timing parameters of a session that has not started."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    return sessions.update_timing(
        session,
        session_id,
        current_user.id,
        focus_minutes=timing.focus_minutes,
        break_minutes=timing.break_minutes,
        long_break_minutes=timing.long_break_minutes,
        long_break_interval_cycles=timing.long_break_interval_cycles,
        total_cycles=timing.total_cycles,
        expected_version=timing.expected_version,
    )


@router.put("/{session_id}/note", response_model=SessionResponse)
def update_note_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    activity_id: UUID,
    session_id: UUID,
    note_data: SessionNoteUpdate,
) -> SessionResponse:
    """Replace the session note."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)
    return sessions.set_note(
        session, session_id, current_user.id, note_data.note, note_data.expected_version
    )


@router.get("/{session_id}/events")
def stream_session_events_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    sessions: Sessions,
    broker: EventBroker,
    activity_id: UUID,
    session_id: UUID,
) -> StreamingResponse:
    """Stream phase completions of a session as server-sent events."""
    _in_activity(sessions.get(session, session_id, current_user.id), activity_id)

    subscription = broker.subscribe(session_id)
    keepalive = get_settings().EVENT_STREAM_KEEPALIVE_SECONDS

    def event_stream():
        try:
            yield ": connected\n\n"
            while subscription.active:
                event = subscription.next_event(timeout=keepalive)
                if event is not None:
                    yield event.to_sse()
                elif subscription.active:
                    yield ": keepalive\n\n"
        finally:
            broker.unsubscribe(subscription)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
