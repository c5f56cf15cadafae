"""Database module for chat memory persistence."""

from src.db.connection import (
    SessionLocal,
    create_db_engine,
    create_session_factory,
    engine,
    get_db_context,
    init_db,
)
from src.db.models import Base, ChatMessage, MessageRole

__all__ = [
    # Models
    "Base",
    "ChatMessage",
    # Enums
    "MessageRole",
    # Connection
    "engine",
    "SessionLocal",
    "create_db_engine",
    "create_session_factory",
    "get_db_context",
    "init_db",
]
