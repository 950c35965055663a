"""Database engine and session management for the cache index.

The artifact cache keeps its key -> object index in a SQLite database
inside the cache root. This module provides SQLAlchemy engine creation,
session factory, and the base model class for ORM models.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

INDEX_FILENAME = "index.sqlite"

# Seconds SQLite waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def index_url(cache_root: Path) -> str:
    """Return the SQLite URL of the index database under a cache root."""
    return f"sqlite:///{cache_root / INDEX_FILENAME}"


def get_engine(db_url: str) -> Any:
    """Create and return a SQLAlchemy engine.

    Args:
        db_url: Database URL.

    Returns:
        SQLAlchemy Engine instance.
    """
    # SQLite-specific connect args for concurrent readers/writers
    connect_args: dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT

    engine = create_engine(
        db_url,
        connect_args=connect_args,
        echo=False,
    )

    if db_url.startswith("sqlite") and ":memory:" not in db_url:

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return engine


def get_session_factory(engine: Any) -> sessionmaker[Session]:
    """Create and return a session factory.

    Args:
        engine: SQLAlchemy engine.

    Returns:
        Session factory (sessionmaker).
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    Args:
        session_factory: Session factory.

    Yields:
        SQLAlchemy Session instance.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Any) -> None:
    """Create all tables defined by ORM models, if they do not exist.

    Args:
        engine: SQLAlchemy engine.
    """
    # Import models so they are registered with the mapper
    from mason.cache import models as cache_models  # noqa: F401

    Base.metadata.create_all(bind=engine)


__all__ = [
    "INDEX_FILENAME",
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "index_url",
]
