"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- Database fixtures (in-memory SQLite shared across sessions)
- Conversation store and ingestion service instances
"""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import Base
from src.services.chat_memory import DbChatMemory
from src.services.log_ingestion import LogIngestionService
from tests.helpers import NOW


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine; every session sees the same database."""
    db_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def memory(session_factory) -> DbChatMemory:
    """Store under test with a small retention window."""
    return DbChatMemory(session_factory, max_messages_per_conversation=5)


@pytest.fixture
def ingestion(memory: DbChatMemory) -> LogIngestionService:
    """Ingestion service with the clock pinned to NOW."""
    return LogIngestionService(memory, clock=NOW.timestamp)
