"""Periodic retention sweep over every stored conversation.

RetentionWorker trims each conversation to its newest N messages. A sweep
enumerates conversation ids and prunes them one by one; a failure on one
conversation is logged and counted without aborting the rest. The worker
runs on a single daemon thread: it waits the initial delay, sweeps, then
sweeps again every interval until stopped.
"""

import logging
import threading
from types import TracebackType
from typing import Self

from src.errors import ValidationError
from src.services.chat_memory import DbChatMemory

_module_logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600.0
DEFAULT_INITIAL_DELAY_SECONDS = 3600.0


class RetentionWorker:
    """Scheduled pruning of a DbChatMemory.

    Args:
        memory: Store to prune.
        max_messages_per_conversation: Messages kept per conversation.
            Defaults to the store's configured window.
        interval_seconds: Time between sweeps.
        initial_delay_seconds: Time before the first sweep.
        logger: Logger to report through; defaults to the module logger.

    Raises:
        ValidationError: If a size or interval is out of range.
    """

    def __init__(
        self,
        memory: DbChatMemory,
        max_messages_per_conversation: int | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_messages_per_conversation is None:
            max_messages_per_conversation = memory.max_messages_per_conversation
        if max_messages_per_conversation <= 0:
            raise ValidationError("max_messages_per_conversation must be positive")
        if interval_seconds <= 0:
            raise ValidationError("interval_seconds must be positive")
        if initial_delay_seconds < 0:
            raise ValidationError("initial_delay_seconds must not be negative")

        self._memory = memory
        self._keep = max_messages_per_conversation
        self._interval = interval_seconds
        self._initial_delay = initial_delay_seconds
        self._log = logger or _module_logger

        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def run_once(self) -> dict[str, int]:
        """Prune every conversation once.

        Returns:
            Dict with conversations, pruned and failed counts.
        """
        with self._run_lock:
            conversations = 0
            pruned = 0
            failed = 0

            for conversation_id in self._memory.conversation_ids():
                conversations += 1
                try:
                    pruned += self._memory.prune(conversation_id, self._keep)
                except Exception as e:
                    failed += 1
                    self._log.error(
                        "Failed to enforce retention for conversationId: %s: %s",
                        conversation_id, e,
                    )

            self._log.info(
                "Retention sweep finished: conversations=%d pruned=%d failed=%d",
                conversations, pruned, failed,
            )
            return {
                "conversations": conversations,
                "pruned": pruned,
                "failed": failed,
            }

    def _loop(self) -> None:
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                # Listing conversations failed; try again next interval
                self._log.error("Retention sweep failed: %s", e)
            if self._stop_event.wait(self._interval):
                return

    def start(self) -> None:
        """Start the background thread. Calling it again is a no-op."""
        with self._state_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name="ci-memory-retention", daemon=True
            )
            self._thread.start()
        self._log.info(
            "Retention worker started (keep=%d, interval=%ss, initial_delay=%ss)",
            self._keep, self._interval, self._initial_delay,
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Wake the background thread and wait for it to exit."""
        with self._state_lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is None:
            return
        thread.join(timeout)
        if thread.is_alive():
            self._log.warning("Retention worker did not stop within %ss", timeout)
        else:
            self._log.info("Retention worker stopped")

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
