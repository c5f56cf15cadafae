"""Database-backed chat memory for Jenkins job conversations.

Every message of every job lives in ``chat_messages``. Producers append
batches with ``add``; the AI caller reads a bounded window with ``get``.
``has_two_build_logs`` answers whether a build has emitted both of its
build-log messages. Retention is not enforced here: RetentionWorker calls
``conversation_ids`` and ``prune`` on a schedule.

Each public operation opens its own session from the factory and runs in
one transaction. No conversation state is cached in process, so any number
of producer threads may share one instance. Storage errors propagate.
"""

import json
import logging
import threading
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from src.db.connection import get_db_context
from src.db.models import ChatMessage, MessageRole
from src.errors import ValidationError
from src.models.build_log import BUILD_LOG_TYPE_TAG
from src.models.messages import Message, MessageMetadata

_module_logger = logging.getLogger(__name__)

# ~5M tokens, ~10MB of text per message
MAX_CONTENT_LENGTH = 10_000_000

DEFAULT_MAX_MESSAGES_PER_CONVERSATION = 100


class _MonotonicClock:
    """UTC ISO8601 timestamps that strictly increase within the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: datetime | None = None

    def next_iso(self) -> str:
        with self._lock:
            now = datetime.now(UTC)
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now.isoformat(timespec="microseconds")


_clock = _MonotonicClock()


class DbChatMemory:
    """Persistent per-job conversation store.

    Args:
        session_factory: Callable returning a new SQLAlchemy Session
            (typically a ``sessionmaker``).
        max_messages_per_conversation: Retention window size. Must be
            positive. Enforced by RetentionWorker, not on write.
        max_content_length: Longer message content is truncated on write.
        logger: Logger to report through; defaults to the module logger.

    Raises:
        ValidationError: If the session factory is missing or a size is not
            positive.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        max_messages_per_conversation: int = DEFAULT_MAX_MESSAGES_PER_CONVERSATION,
        max_content_length: int = MAX_CONTENT_LENGTH,
        logger: logging.Logger | None = None,
    ) -> None:
        if session_factory is None:
            raise ValidationError("session_factory must not be None")
        if max_messages_per_conversation <= 0:
            raise ValidationError("max_messages_per_conversation must be positive")
        if max_content_length <= 0:
            raise ValidationError("max_content_length must be positive")
        self._session_factory = session_factory
        self._max_messages = max_messages_per_conversation
        self._max_content_length = max_content_length
        self._log = logger or _module_logger

    @property
    def max_messages_per_conversation(self) -> int:
        return self._max_messages

    def _transaction(self) -> AbstractContextManager[Session]:
        return get_db_context(self._session_factory)

    @staticmethod
    def _require_conversation_id(conversation_id: str | None) -> None:
        if conversation_id is None:
            raise ValidationError("Conversation ID must not be None")

    # --- Write path ---

    def add(self, conversation_id: str, messages: Sequence[Message] | None) -> int:
        """Append messages to a conversation in one transaction.

        Messages with no content are skipped. Oversized content is truncated
        to the configured cap. A missing build number is stored as 0.

        Args:
            conversation_id: Jenkins job name.
            messages: Messages to append, persisted in the given order.

        Returns:
            Number of rows written.

        Raises:
            ValidationError: If conversation_id is None.
        """
        self._require_conversation_id(conversation_id)
        if not messages:
            self._log.debug("No messages to add for conversationId: %s", conversation_id)
            return 0

        written = 0
        with self._transaction() as db:
            for message in messages:
                row = self._to_row(conversation_id, message)
                if row is None:
                    continue
                db.add(row)
                written += 1
        return written

    def _to_row(self, conversation_id: str, message: Message) -> ChatMessage | None:
        content = message.content
        if content is None:
            self._log.warning(
                "Message content is null for conversationId: %s, skipping", conversation_id
            )
            return None

        if len(content) > self._max_content_length:
            self._log.warning(
                "Truncating content for conversationId: %s from %d to %d characters",
                conversation_id,
                len(content),
                self._max_content_length,
            )
            content = content[: self._max_content_length]

        build_number = message.metadata.build_number
        if build_number is None:
            self._log.warning(
                "Missing build_number for conversationId: %s, using default 0",
                conversation_id,
            )
            build_number = 0

        metadata = message.metadata.to_dict()
        timestamp = _clock.next_iso()
        return ChatMessage(
            conversation_id=conversation_id,
            job_name=conversation_id,
            build_number=build_number,
            message_type=message.role.value,
            content=content,
            timestamp=timestamp,
            created_at=timestamp,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
        )

    # --- Read path ---

    def get(self, conversation_id: str, last_n: int) -> list[Message]:
        """Return up to ``last_n`` most recent messages, oldest first.

        SYSTEM and unrecognized rows are dropped from the result.

        Args:
            conversation_id: Jenkins job name.
            last_n: Window size; non-positive values yield an empty list.

        Returns:
            Messages in ascending chronological order.

        Raises:
            ValidationError: If conversation_id is None.
        """
        self._require_conversation_id(conversation_id)
        if last_n <= 0:
            self._log.debug(
                "Requested zero messages for conversationId: %s, returning empty list",
                conversation_id,
            )
            return []

        with self._transaction() as db:
            rows = db.scalars(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
                .limit(last_n)
            ).all()
            snapshots = [
                (row.id, row.message_type, row.content, row.metadata_json)
                for row in reversed(rows)
            ]

        self._log.debug(
            "Retrieved %d messages for conversationId: %s", len(snapshots), conversation_id
        )
        messages = []
        for row_id, message_type, content, metadata_json in snapshots:
            message = self._to_message(row_id, message_type, content, metadata_json)
            if message is not None:
                messages.append(message)
        return messages

    def _to_message(
        self,
        row_id: int,
        message_type: str,
        content: str,
        metadata_json: str | None,
    ) -> Message | None:
        try:
            role = MessageRole(message_type)
        except ValueError:
            self._log.error("Invalid message type: %s, skipping message %s", message_type, row_id)
            return None
        if role is MessageRole.SYSTEM:
            self._log.warning("Unsupported message type: %s, skipping message %s", role.value, row_id)
            return None
        return Message(role=role, content=content, metadata=self._load_metadata(row_id, metadata_json))

    def _load_metadata(self, row_id: int, metadata_json: str | None) -> MessageMetadata:
        if not metadata_json:
            return MessageMetadata()
        try:
            raw: Any = json.loads(metadata_json)
        except (json.JSONDecodeError, TypeError):
            self._log.warning("Corrupted metadata_json for message %s", row_id)
            return MessageMetadata()
        if not isinstance(raw, dict):
            self._log.warning("Corrupted metadata_json for message %s", row_id)
            return MessageMetadata()
        return MessageMetadata(**raw)

    # --- Delete path ---

    def clear(self, conversation_id: str) -> int:
        """Irreversibly delete every message of a conversation.

        Returns:
            Number of rows deleted.

        Raises:
            ValidationError: If conversation_id is None.
        """
        self._require_conversation_id(conversation_id)
        with self._transaction() as db:
            result = db.execute(
                delete(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .execution_options(synchronize_session=False)
            )
        self._log.debug("Cleared %d messages for conversationId: %s", result.rowcount, conversation_id)
        return result.rowcount

    # --- Build completion ---

    def count_build_logs(self, conversation_id: str, build_number: int) -> int:
        """Count stored build-log messages for one build."""
        self._require_conversation_id(conversation_id)
        if build_number < 0:
            raise ValidationError("Build number must be non-negative")
        with self._transaction() as db:
            return db.scalar(
                select(func.count())
                .select_from(ChatMessage)
                .where(
                    ChatMessage.conversation_id == conversation_id,
                    ChatMessage.build_number == build_number,
                    ChatMessage.content.contains(BUILD_LOG_TYPE_TAG, autoescape=True),
                )
            ) or 0

    def has_two_build_logs(self, conversation_id: str, build_number: int) -> bool:
        """Whether exactly two build-log messages exist for a build.

        Zero, one, or three and more matching messages all mean "not ready".

        Raises:
            ValidationError: If conversation_id is None or build_number is
                negative.
        """
        count = self.count_build_logs(conversation_id, build_number)
        self._log.debug(
            "Found %d build_log_data logs for conversationId: %s, buildNumber: %d",
            count, conversation_id, build_number,
        )
        return count == 2

    # --- Retention support ---

    def conversation_ids(self) -> list[str]:
        """Distinct conversation ids currently present in storage."""
        with self._transaction() as db:
            return list(db.scalars(select(ChatMessage.conversation_id).distinct()).all())

    def count(self, conversation_id: str) -> int:
        """Number of stored messages in a conversation."""
        self._require_conversation_id(conversation_id)
        with self._transaction() as db:
            return db.scalar(
                select(func.count())
                .select_from(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
            ) or 0

    def prune(self, conversation_id: str, keep: int | None = None) -> int:
        """Delete all but the ``keep`` most recent messages of a conversation.

        Args:
            conversation_id: Jenkins job name.
            keep: Messages to retain; defaults to the configured window.

        Returns:
            Number of rows deleted.

        Raises:
            ValidationError: If conversation_id is None or keep is not
                positive.
        """
        self._require_conversation_id(conversation_id)
        keep = self._max_messages if keep is None else keep
        if keep <= 0:
            raise ValidationError("keep must be positive")

        conversation = ChatMessage.conversation_id == conversation_id
        # Oldest row of the retained window; only rows strictly older than it
        # are deleted.
        cutoff = (
            select(ChatMessage.timestamp, ChatMessage.id)
            .where(conversation)
            .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
            .offset(keep - 1)
            .limit(1)
        )
        with self._transaction() as db:
            row = db.execute(cutoff).first()
            if row is None:
                return 0
            cut_timestamp, cut_id = row
            stmt = delete(ChatMessage).where(
                conversation,
                or_(
                    ChatMessage.timestamp < cut_timestamp,
                    and_(ChatMessage.timestamp == cut_timestamp, ChatMessage.id < cut_id),
                ),
            )
            result = db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount:
            self._log.info(
                "Pruned %d messages for conversationId: %s (keeping %d)",
                result.rowcount, conversation_id, keep,
            )
        return result.rowcount
