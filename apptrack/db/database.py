"""Database engine and session management.

The engine URL comes from config (``database.url``) and falls back to a
local SQLite file at APPTRACK_DB_PATH (default: /tmp/apptrack.db).

Environment variables:
  DATABASE_URL      : Full SQLAlchemy URL (overrides everything)
  APPTRACK_DB_PATH  : Local SQLite path when no URL is configured
"""
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create SQLAlchemy engine; SQLite gets WAL mode and foreign keys."""
    url = url or get_config().database_url
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    if url.startswith("sqlite"):
        in_memory = ":memory:" in url or url == "sqlite://"

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Create a session factory."""
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def get_session(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    """Context manager for database sessions with auto-commit/rollback."""
    factory = get_session_factory(engine)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables (for initial setup or testing)."""
    if engine is None:
        engine = get_app_engine()
    Base.metadata.create_all(engine)
    logger.info("Database tables created.")


# ---------------------------------------------------------------------------
# Application-wide engine (FastAPI dependency)
# ---------------------------------------------------------------------------

def get_app_engine() -> Engine:
    """Process-wide engine built from config on first use."""
    global _engine, _session_factory
    if _engine is None:
        config = get_config()
        _engine = get_engine(config.database_url, echo=config.database.echo)
        _session_factory = get_session_factory(_engine)
    return _engine


def set_app_engine(engine: Engine) -> None:
    """Swap the process-wide engine (tests, CLI with --db)."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = get_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: request-scoped session, committed on success."""
    get_app_engine()
    db = _session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
