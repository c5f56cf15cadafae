"""Base model shared by every typed Jenkins pipeline log.

Each pipeline stage publishes one JSON payload tagged by a ``type``
discriminator. The concrete variants live in sibling modules and are joined
into the closed ``TypedLogRecord`` union in ``src.models.records``. Every
variant provides:

- ``conversation_id``: the Jenkins job name, used as the conversation key
- ``build_number``: the Jenkins build number (0 when unknown)
- ``content_to_analyze()``: one analyzable text block; pure, never mutates
- ``materialize()``: a copy with compressed fields decoded in place
- ``to_json()``: compact JSON with None fields omitted, ``"{}"`` on failure
"""

import logging
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import PydanticSerializationError

logger = logging.getLogger(__name__)

# Fallback texts when a record produced no lines at all
NO_CONTENT_AVAILABLE = "No content available"
NO_CONTENT_TO_DECODE = "No content to decode"


class TypedLog(BaseModel):
    """Common fields of a Jenkins pipeline log payload.

    Attributes:
        type: Discriminator, fixed per subclass.
        timestamp: ISO8601 time the stage emitted the payload.
        job_name: Jenkins job name (the conversation id).
        build_number: Jenkins build number; negative values are rejected.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    timestamp: str | None = None
    job_name: str | None = None
    build_number: int = Field(default=0, ge=0)

    @property
    def conversation_id(self) -> str | None:
        return self.job_name

    def content_to_analyze(self) -> str:
        """Render the record as one text block for AI analysis."""
        raise NotImplementedError

    def materialize(self) -> Self:
        """Return a copy with every compressed field decoded.

        Variants without compressed fields return themselves.
        """
        return self

    def to_json(self) -> str:
        """Serialize to compact JSON using wire field names.

        Returns:
            JSON string, or ``"{}"`` if serialization fails for any reason.
        """
        try:
            return self.model_dump_json(by_alias=True, exclude_none=True)
        except (PydanticSerializationError, ValueError, TypeError) as e:
            logger.error(
                "Failed to create JSON for %s (job=%s, build=%s): %s",
                type(self).__name__,
                self.job_name,
                self.build_number,
                e,
            )
            return "{}"


class DataTypedLog(TypedLog):
    """Typed log whose payload sits in a free-form ``data`` map.

    Attributes:
        data: Stage-specific payload; compressed sub-fields are flagged by
            ``<key>_compressed`` entries.
        error: Error text reported by the stage, rendered first.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    def _error_lines(self) -> list[str]:
        if self.error is not None:
            return [f"Error: {self.error}\n"]
        return []

    def _with_data(self, updates: dict[str, Any]) -> Self:
        """Copy of the record with ``updates`` merged into a fresh data map."""
        return self.model_copy(update={"data": {**(self.data or {}), **updates}})


def format_value(value: Any) -> str:
    """Render a scalar or container the way log readers expect.

    Lists print as ``[a, b]``, maps as ``{k=v, ...}``, None as ``null`` and
    booleans in lower case, matching the upstream stage output.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}={format_value(v)}" for k, v in value.items()) + "}"
    return str(value)


def is_true(value: Any) -> bool:
    """Strict flag check: only the JSON literal ``true`` counts."""
    return value is True


__all__ = [
    "TypedLog",
    "DataTypedLog",
    "NO_CONTENT_AVAILABLE",
    "NO_CONTENT_TO_DECODE",
    "format_value",
    "is_true",
]
