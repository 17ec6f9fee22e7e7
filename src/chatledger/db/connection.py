"""
Database connection management for chatledger.

Provides engine construction, schema initialization and connectivity checks.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from chatledger.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    Args:
        url: SQLAlchemy database URL (defaults to settings.database_url)
        echo: Log SQL statements (defaults to settings.db_echo)

    Returns:
        Configured Engine. SQLite connections get foreign keys enforced and
        WAL journaling (file databases only).
    """
    url = url or settings.database_url
    echo = settings.db_echo if echo is None else echo

    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if _is_memory_sqlite(url):
            # One shared connection so every session sees the same database
            kwargs["poolclass"] = StaticPool
        else:
            db_file = url.split("///", 1)[-1]
            if db_file:
                Path(db_file).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not _is_memory_sqlite(url):
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True)


def get_engine() -> Engine:
    """
    Get the process-wide engine for settings.database_url.

    Note:
        This is a singleton. Multiple calls return the same instance.
    """
    global _engine

    if _engine is None:
        _engine = create_db_engine()
        logger.debug(f"Created database engine for {_engine.url!r}")
    return _engine


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Create all tables and full-text indexes.

    Prefer Alembic migrations for long-lived databases:
    `alembic upgrade head`.
    """
    from chatledger.db import search  # noqa: F401  (registers FTS DDL hooks)
    from chatledger.models.db import Base

    Base.metadata.create_all(bind=engine or get_engine())


def check_connection(engine: Optional[Engine] = None) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
