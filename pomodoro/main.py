"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from pomodoro import __version__
from pomodoro.api.errors import register_exception_handlers
from pomodoro.api.sessions import router as sessions_router
from pomodoro.config import get_settings
from pomodoro.db.session import engine
from pomodoro.events.stream import SessionEventBroker

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables and own the session event broker."""
    # Import models to register them with SQLModel
    from pomodoro.models import Activity, PomodoroSession, ScheduledNotification, User  # noqa: F401
    SQLModel.metadata.create_all(engine)

    app.state.event_broker = SessionEventBroker(ttl_seconds=settings.EVENT_STREAM_TTL_SECONDS)
    try:
        yield
    finally:
        app.state.event_broker.close()

app = FastAPI(
    title="Pomodoro Session API",
    description="Pomodoro session lifecycle and phase notifications",
    version=__version__,
    lifespan=lifespan,
)

cors_origins = [
    settings.FRONTEND_URL,
    "http://localhost:4200",
    "http://localhost:3000",
]
# Remove duplicates and empty strings
cors_origins = [origin for origin in set(cors_origins) if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Register routers
app.include_router(sessions_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
