"""Database engine and session management."""

from collections.abc import Generator

from sqlmodel import Session, create_engine

from pomodoro.config import get_settings

settings = get_settings()


def _database_url(raw_url: str) -> str:
    """Convert postgresql:// to postgresql+psycopg:// for the psycopg v3 driver."""
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url or "sqlite:///./pomodoro.db"


database_url = _database_url(settings.DATABASE_URL)

connect_args: dict = {}
if database_url.startswith("postgresql"):
    connect_args = {"sslmode": "require"}
elif database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    database_url,
    echo=False,
    pool_pre_ping=True,
    connect_args=connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session with automatic cleanup."""
    with Session(engine) as session:
        yield session
