"""SQLAlchemy ORM models for the chat memory database.

One table, ``chat_messages``, holds every message of every conversation.
A conversation is not stored separately: it exists while at least one row
carries its ``conversation_id`` (the Jenkins job name). Rows are immutable
once inserted. Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format with microseconds.

    A fixed microsecond precision keeps lexical order equal to
    chronological order.
    """
    return datetime.now(UTC).isoformat(timespec="microseconds")


class MessageRole(str, Enum):
    """Role of a stored chat message.

    Stored verbatim in ``chat_messages.message_type``. SYSTEM rows are
    accepted on write but never returned to AI callers.
    """

    USER = "USER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ChatMessage(Base):
    """One persisted message of a job conversation.

    Attributes:
        id: Autoincrement primary key, also the tie-breaker for ordering.
        conversation_id: Conversation key (the Jenkins job name).
        job_name: Jenkins job name, always equal to conversation_id.
        build_number: Jenkins build number, 0 when unknown.
        message_type: USER, ASSISTANT or SYSTEM.
        content: Message text (JSON of the typed log for ingested messages).
        timestamp: ISO8601 UTC write time, strictly increasing per process.
        created_at: ISO8601 UTC row creation time.
        metadata_json: Optional JSON object with message metadata.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chatmsg_conversation_ts", "conversation_id", "timestamp"),
        Index("ix_chatmsg_conversation_build", "conversation_id", "build_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    job_name: Mapped[str] = mapped_column(String(255), nullable=False)
    build_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ChatMessage(id={self.id!r}, conversation={self.conversation_id!r}, "
            f"build={self.build_number}, type={self.message_type!r})>"
        )
