"""Database engine, session factory and FastAPI dependency.

WHAT:
    One sync SQLAlchemy engine built from Settings.DATABASE_URL, the
    `SessionLocal` factory and the `get_db` dependency.

WHY:
    Every lifecycle operation (callback upsert, sync batch upsert, webhook
    write) is a short, request-scoped transaction; the ARQ worker reuses the
    same factory through `get_sync_session`.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings


def _get_database_url() -> str:
    database_url = get_settings().DATABASE_URL
    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure backend/.env is loaded or env var is exported."
        )
    return database_url


DATABASE_URL = _get_database_url()

# NOTE: SQLite engines (tests/dev) do not support pool_size/max_overflow.
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

# Base is defined in metrionix.models to keep a single registry
from .models import Base  # noqa: E402,F401


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Context manager for sessions outside FastAPI (workers, scripts).

    Example:
        with get_sync_session() as db:
            integrations = db.query(Integration).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
