"""Ingestion of typed pipeline logs into the conversation store.

Each inbound body goes through the same steps:

1. Parse it into a TypedLogRecord (see ``parse_typed_log``).
2. Drop it when its timestamp is unparseable, too far in the future or
   too old.
3. Decode compressed fields and store the record JSON as a USER message in
   the job's conversation, tagged with the build number.
4. Track build readiness: once both build-log messages of a build are
   stored, the build is marked ready. The secret scan over the build log
   is the last message of a build; when it arrives for a ready build the
   ``on_build_ready`` callback runs (retried once) and the mark is cleared.

``process_log_message`` never raises. Every failure is logged with a
redacted payload preview and reported as an IngestOutcome.
"""

import logging
import re
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum

from src.errors import LogParseError, PayloadDecodeError
from src.models.build_log import BuildLogData
from src.models.messages import UserMessage
from src.models.records import TypedLogRecord, parse_typed_log
from src.models.secret_detection import BUILD_LOG_SOURCE, SecretDetection
from src.services.chat_memory import DbChatMemory
from src.utils.redaction import payload_preview

_module_logger = logging.getLogger(__name__)

# Older payloads were produced by a previous build attempt
DEFAULT_MAX_AGE_SECONDS = 420.0
# Tolerated clock skew between Jenkins and this service
DEFAULT_ALLOWED_FUTURE_GAP_SECONDS = 30.0

_ISO_TIMESTAMP = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<offset>Z|[+-]\d{2}:?\d{2})$"
)


class IngestOutcome(str, Enum):
    """What happened to one inbound payload."""

    STORED = "stored"
    ANALYSIS_TRIGGERED = "analysis_triggered"
    DROPPED_INVALID_TIMESTAMP = "dropped_invalid_timestamp"
    DROPPED_FUTURE = "dropped_future"
    DROPPED_STALE = "dropped_stale"
    FAILED = "failed"


def parse_log_timestamp(value: str | None) -> datetime | None:
    """Parse a pipeline ISO8601 timestamp into an aware datetime.

    An offset is required. ``Z``, ``+HH:MM`` and ``+HHMM`` are accepted, and
    fractions beyond microseconds are truncated.

    Returns:
        Timezone-aware datetime, or None if the value cannot be parsed.
    """
    if not value:
        return None
    match = _ISO_TIMESTAMP.match(value.strip())
    if match is None:
        return None
    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset == "Z":
        offset = "+00:00"
    elif ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"
    try:
        return datetime.fromisoformat(f"{match.group('base')}.{fraction}{offset}")
    except ValueError:
        return None


def build_key(conversation_id: str, build_number: int) -> str:
    return f"{conversation_id}#{build_number}"


class LogIngestionService:
    """Turns raw pipeline payloads into stored conversation messages.

    Args:
        memory: Conversation store to write to.
        on_build_ready: Called as ``on_build_ready(job_name, build_number)``
            when a build's final secret scan arrives after both build logs.
        max_age_seconds: Payloads older than this are dropped. None turns
            the freshness check off, which suits bulk replays.
        allowed_future_gap_seconds: Payloads further in the future than
            this are dropped.
        clock: Returns the current time as epoch seconds.
        logger: Logger to report through; defaults to the module logger.
    """

    def __init__(
        self,
        memory: DbChatMemory,
        on_build_ready: Callable[[str, int], None] | None = None,
        max_age_seconds: float | None = DEFAULT_MAX_AGE_SECONDS,
        allowed_future_gap_seconds: float = DEFAULT_ALLOWED_FUTURE_GAP_SECONDS,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._memory = memory
        self._on_build_ready = on_build_ready
        self._max_age = max_age_seconds
        self._future_gap = allowed_future_gap_seconds
        self._clock = clock
        self._log = logger or _module_logger
        self._ready_builds: set[str] = set()
        self._ready_lock = threading.Lock()

    def is_build_ready(self, conversation_id: str, build_number: int) -> bool:
        with self._ready_lock:
            return build_key(conversation_id, build_number) in self._ready_builds

    def process_log_message(self, raw: str | bytes) -> IngestOutcome:
        """Ingest one inbound payload.

        Args:
            raw: Message body as received.

        Returns:
            The IngestOutcome for this payload.
        """
        try:
            return self._process(raw)
        except (LogParseError, PayloadDecodeError) as e:
            self._log.error("Dropping log payload: %s; payload=%s", e, self._preview(raw))
        except Exception as e:
            self._log.error(
                "Failed to process log payload: %s; payload=%s",
                e, self._preview(raw), exc_info=True,
            )
        return IngestOutcome.FAILED

    def ingest_lines(self, lines: Iterable[str]) -> Counter:
        """Ingest one payload per line, skipping blank lines.

        Returns:
            Counter of IngestOutcome values.
        """
        outcomes: Counter = Counter()
        for line in lines:
            if not line.strip():
                continue
            outcomes[self.process_log_message(line)] += 1
        return outcomes

    @staticmethod
    def _preview(raw: str | bytes) -> str:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        return payload_preview(raw)

    def _process(self, raw: str | bytes) -> IngestOutcome:
        record = parse_typed_log(raw)

        if self._max_age is not None:
            dropped = self._check_freshness(record)
            if dropped is not None:
                return dropped

        conversation_id = record.conversation_id
        if not conversation_id:
            raise LogParseError(f"Missing job_name in {record.type} payload")

        record = record.materialize()
        message = UserMessage(record.to_json(), {"build_number": record.build_number})
        self._memory.add(conversation_id, [message])
        self._log.info(
            "Stored %s log for job=%s build=%d",
            record.type, conversation_id, record.build_number,
        )

        if isinstance(record, BuildLogData):
            self._track_build_log(conversation_id, record.build_number)
        elif isinstance(record, SecretDetection) and record.source == BUILD_LOG_SOURCE:
            if self._consume_ready(conversation_id, record.build_number):
                self._trigger_analysis(conversation_id, record.build_number)
                return IngestOutcome.ANALYSIS_TRIGGERED
        return IngestOutcome.STORED

    def _check_freshness(self, record: TypedLogRecord) -> IngestOutcome | None:
        emitted = parse_log_timestamp(record.timestamp)
        if emitted is None:
            self._log.warning(
                "Invalid timestamp %r in %s log for job=%s build=%s, dropping",
                record.timestamp, record.type, record.job_name, record.build_number,
            )
            return IngestOutcome.DROPPED_INVALID_TIMESTAMP

        age = self._clock() - emitted.timestamp()
        if age < -self._future_gap:
            self._log.warning(
                "Dropping %s log for job=%s build=%s: timestamp %s is %.1fs in the future",
                record.type, record.job_name, record.build_number, record.timestamp, -age,
            )
            return IngestOutcome.DROPPED_FUTURE
        if age > self._max_age:
            self._log.warning(
                "Dropping stale %s log for job=%s build=%s: %.1fs old (max %ss)",
                record.type, record.job_name, record.build_number, age, self._max_age,
            )
            return IngestOutcome.DROPPED_STALE
        return None

    def _track_build_log(self, conversation_id: str, build_number: int) -> None:
        if not self._memory.has_two_build_logs(conversation_id, build_number):
            return
        with self._ready_lock:
            self._ready_builds.add(build_key(conversation_id, build_number))
        self._log.info(
            "Both build logs stored for job=%s build=%d, build is ready",
            conversation_id, build_number,
        )

    def _consume_ready(self, conversation_id: str, build_number: int) -> bool:
        key = build_key(conversation_id, build_number)
        with self._ready_lock:
            if key not in self._ready_builds:
                return False
            self._ready_builds.discard(key)
            return True

    def _trigger_analysis(self, conversation_id: str, build_number: int) -> None:
        if self._on_build_ready is None:
            self._log.info(
                "Build ready for analysis: job=%s build=%d (no handler registered)",
                conversation_id, build_number,
            )
            return

        for attempt in (1, 2):
            try:
                self._on_build_ready(conversation_id, build_number)
                self._log.info(
                    "Analysis triggered for job=%s build=%d", conversation_id, build_number
                )
                return
            except Exception as e:
                if attempt == 1:
                    self._log.warning(
                        "Analysis failed for job=%s build=%d, retrying: %s",
                        conversation_id, build_number, e,
                    )
                else:
                    self._log.error(
                        "Analysis failed again for job=%s build=%d, giving up: %s",
                        conversation_id, build_number, e,
                    )
