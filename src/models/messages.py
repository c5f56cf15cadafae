"""Chat message models exchanged with the conversation store.

A Message is what producers hand to ``DbChatMemory.add`` and what
``DbChatMemory.get`` returns. Its metadata is a typed model: the
``build_number`` key is coerced to an optional int once, when the metadata
object is built, so the store never has to guess its type.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.db.models import MessageRole

logger = logging.getLogger(__name__)


class MessageMetadata(BaseModel):
    """Metadata attached to a chat message.

    Attributes:
        build_number: Jenkins build number the message belongs to. None when
            the producer did not supply one. Malformed values (negative
            numbers, non-numeric strings, floats, booleans, containers) are
            logged and become 0.

    Any other keys are preserved as extra fields and round-trip through the
    store unchanged.
    """

    model_config = ConfigDict(extra="allow")

    build_number: int | None = None

    @field_validator("build_number", mode="before")
    @classmethod
    def coerce_build_number(cls, value: Any) -> int | None:
        """Accept ints and numeric strings; default anything else to 0."""
        if value is None:
            return None
        if isinstance(value, bool):
            logger.warning("Invalid build_number type: %r, using default 0", value)
            return 0
        if isinstance(value, str):
            try:
                value = int(value.strip())
            except ValueError:
                logger.warning("Invalid build_number format: %r, using default 0", value)
                return 0
        if isinstance(value, int):
            if value < 0:
                logger.warning("Negative build_number: %r, using default 0", value)
                return 0
            return value
        logger.warning(
            "Invalid build_number type %s: %r, using default 0",
            type(value).__name__,
            value,
        )
        return 0

    def to_dict(self) -> dict[str, Any]:
        """Plain dict of the metadata with unset keys dropped."""
        return self.model_dump(exclude_none=True)


class Message(BaseModel):
    """A role-tagged chat message.

    Attributes:
        role: USER, ASSISTANT or SYSTEM.
        content: Message text. None is tolerated here and skipped by the store.
        metadata: Typed metadata; a plain dict is coerced on construction.
    """

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str | None
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)

    @property
    def build_number(self) -> int | None:
        return self.metadata.build_number


def UserMessage(  # noqa: N802
    content: str | None, metadata: dict[str, Any] | MessageMetadata | None = None
) -> Message:
    """Build a USER message."""
    return Message(role=MessageRole.USER, content=content, metadata=metadata or {})


def AssistantMessage(  # noqa: N802
    content: str | None, metadata: dict[str, Any] | MessageMetadata | None = None
) -> Message:
    """Build an ASSISTANT message."""
    return Message(role=MessageRole.ASSISTANT, content=content, metadata=metadata or {})


def SystemMessage(  # noqa: N802
    content: str | None, metadata: dict[str, Any] | MessageMetadata | None = None
) -> Message:
    """Build a SYSTEM message (stored, but never returned by the store)."""
    return Message(role=MessageRole.SYSTEM, content=content, metadata=metadata or {})
