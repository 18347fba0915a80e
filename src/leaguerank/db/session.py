"""
Database session management for League Rankings.

Provides the SQLAlchemy engine and session factory configured from config.py.

Usage:
    # As a context manager (scripts and the calculation job)
    from leaguerank.db import get_session

    with get_session() as session:
        games = session.query(Game).all()
        # Commits automatically on exit, rolls back on exception

    # As a FastAPI dependency
    from leaguerank.db.session import get_db

    @app.get("/api/rankings")
    def rankings(db: Session = Depends(get_db)):
        ...
"""

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from leaguerank.config import settings


# Anything that returns a new Session when called (sessionmaker or a test double)
SessionFactory = Callable[[], Session]


def get_engine(database_url: str | None = None):
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool sized from settings (server databases only)
    - Pre-ping to verify connections before use (handles stale connections)
    - SQL echo only when LOG_LEVEL=DEBUG
    """
    url = make_url(database_url or settings.database_url)
    kwargs = {
        "pool_pre_ping": True,
        "echo": settings.log_level == "DEBUG",
    }
    # SQLite uses its own pool classes that don't take sizing arguments
    if url.get_backend_name() != "sqlite":
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return create_engine(url, **kwargs)


# Singleton engine, created on first use
_engine = None


def _get_engine():
    """Get or create the singleton engine instance."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


# Session factory - creates new sessions bound to our engine
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=_get_engine(),
)


@contextmanager
def session_scope(factory: SessionFactory) -> Generator[Session, None, None]:
    """
    Commit/rollback scope around a session from any factory.

    The calculation job uses this with an injected factory so tests can run it
    against an in-memory database.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.

    Raises:
        Any exception from the database operation (after rollback)
    """
    with session_scope(SessionLocal) as session:
        yield session


def get_db() -> Generator[Session, None, None]:
    """
    Dependency injection function for FastAPI.

    Use this with FastAPI's Depends() for request-scoped sessions.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
