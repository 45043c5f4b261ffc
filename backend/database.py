"""SQLAlchemy engine, declarative base and session factories.

Transaction conventions: services ``flush()`` and the API layer
``commit()``. Two callers commit on their own: ``SyncOrchestrator``
commits after each phase so progress is visible while a sync runs, and
the job functions in ``tasks.jobs`` own their session end to end.
"""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by every table in ``models``."""


def _is_in_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///") or ":memory:" in url


def _configure_sqlite(engine, wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            # The API process and queue workers write to the same file
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


@lru_cache
def get_engine():
    """Create the engine for ``settings.DATABASE_URL`` (cached per process)."""
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
        _configure_sqlite(engine, wal=not _is_in_memory(url))
    else:
        engine = create_engine(url, pool_pre_ping=True)

    logger.info("Database engine created (%s)", engine.dialect.name)
    return engine


def get_session_local():
    """Session factory bound to the shared engine. Autoflush is off."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db():
    """FastAPI dependency yielding a session that is rolled back on error."""
    db = get_session_local()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
