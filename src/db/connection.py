"""Database connection management for the chat memory.

Provides synchronous database access using SQLAlchemy. SQLite is the
default for development and single-host deployments; PostgreSQL works
through the same models (install the ``postgres`` extra).

Usage:
    from src.db.connection import SessionLocal, init_db

    init_db()  # Create tables
    memory = DbChatMemory(SessionLocal, max_messages_per_conversation=100)

    # Or against an explicit URL
    factory = create_session_factory("postgresql+psycopg://ci@db/ci")
"""

import os
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. CIMEMORY_DB_PATH (converted to sqlite URL)
    3. sqlite:///<platform data dir>/ci_memory.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("CIMEMORY_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for concurrent ingestion and pruning.

    Enables:
    - journal_mode=WAL: readers (history queries) do not block the single
      writer (ingestion or the retention sweep).
    - synchronous=NORMAL: commits are durable after WAL fsync.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for ``url`` with SQLite threading and pragmas set.

    Args:
        url: SQLAlchemy database URL.
        echo: Log every SQL statement.

    Returns:
        Configured Engine.
    """
    is_sqlite = url.startswith("sqlite")
    db_engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=echo,
    )
    if is_sqlite and ":memory:" not in url:
        event.listen(db_engine, "connect", _set_sqlite_pragma)
    return db_engine


def create_session_factory(url: str, echo: bool = False) -> sessionmaker[Session]:
    """Create an engine for ``url`` and return a session factory bound to it.

    Tables are created if missing.
    """
    db_engine = create_db_engine(url, echo=echo)
    init_db(db_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


# Engine creation
DATABASE_URL = get_database_url()

engine = create_db_engine(
    DATABASE_URL,
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@contextmanager
def get_db_context(
    session_factory: Callable[[], Session] | None = None,
) -> Generator[Session, None, None]:
    """Transactional session scope: commit on success, rollback on error.

    Usage:
        with get_db_context() as db:
            db.add(row)
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(db_engine: Engine | None = None) -> None:
    """Create all database tables.

    Safe to call multiple times - will not recreate existing tables.
    """
    Base.metadata.create_all(bind=db_engine or engine)
