"""API dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlmodel import Session, select

from pomodoro.clock import Clock, SystemClock
from pomodoro.config import get_settings
from pomodoro.db.session import get_session
from pomodoro.events.stream import SessionEventBroker
from pomodoro.models.user import User
from pomodoro.services.sessions import SessionService

security = HTTPBearer()


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


DBSession = Annotated[Session, Depends(get_db_session)]


def get_current_user(
    session: DBSession,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> User:
    """Get current authenticated user from JWT token."""
    settings = get_settings()
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.AUTH_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        subject: str | None = payload.get("sub")
        if subject is None:
            raise credentials_exception
        user_id = UUID(subject)
    except (JWTError, ValueError):
        raise credentials_exception

    user = session.exec(select(User).where(User.id == user_id)).first()
    if user is None:
        raise credentials_exception

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_clock() -> Clock:
    return SystemClock()


def get_event_broker(request: Request) -> SessionEventBroker:
    """Broker owned by the application lifespan."""
    return request.app.state.event_broker


EventBroker = Annotated[SessionEventBroker, Depends(get_event_broker)]


def get_session_service(
    broker: EventBroker,
    clock: Annotated[Clock, Depends(get_clock)],
) -> SessionService:
    return SessionService(clock=clock, event_broker=broker)


Sessions = Annotated[SessionService, Depends(get_session_service)]
