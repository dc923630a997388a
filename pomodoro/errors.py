"""Domain exceptions raised by the session core.

Routers never catch these; they are translated to HTTP responses by the
handlers registered in ``pomodoro.api.errors``.
"""

from uuid import UUID


class DomainError(Exception):
    """Base class for errors raised by the session core."""


class NotFoundError(DomainError):
    """Session or activity is absent or not owned by the caller."""

    def __init__(self, entity: str = "Session", entity_id: UUID | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InvalidStateTransition(DomainError):
    """A command's precondition on status or phase does not hold."""

    def __init__(self, message: str, status: str | None = None) -> None:
        self.status = status
        super().__init__(message)


class SessionValidationError(DomainError):
    """Timing parameters are outside their allowed range."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class EditLockedError(InvalidStateTransition, SessionValidationError):
    """Timing edit attempted after the session left NOT_STARTED."""

    def __init__(self, status: str) -> None:
        self.status = status
        self.field = None
        DomainError.__init__(self, f"Cannot edit session in state {status}")


class ConcurrentModification(DomainError):
    """Another writer changed the session first; the caller should retry."""

    def __init__(self, session_id: UUID) -> None:
        self.session_id = session_id
        super().__init__(
            f"Session {session_id} was modified concurrently, retry the request"
        )


class DeliveryFailure(Exception):
    """Push delivery failed.

    Only the dispatch worker sees this. ``permanent`` marks failures that
    will not heal by retrying (unregistered or invalid channel).
    """

    def __init__(self, message: str, permanent: bool = False) -> None:
        self.permanent = permanent
        super().__init__(message)

    @property
    def kind(self) -> str:
        return "permanent" if self.permanent else "transient"
