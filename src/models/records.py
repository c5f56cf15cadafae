"""Closed union of typed pipeline logs and the inbound payload parser.

New log types are added by writing a variant module and listing the class
in ``TypedLogRecord``; the ``type`` field selects the variant.
"""

import json
import logging
from typing import Annotated, Any, Union

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.errors import LogParseError
from src.models.build_log import BuildLogData
from src.models.code_changes import CodeChanges
from src.models.dependency_data import DependencyData
from src.models.instance_info import AdditionalInfoAgent, AdditionalInfoController
from src.models.scan_result import ScanResult
from src.models.secret_detection import SecretDetection

logger = logging.getLogger(__name__)

TypedLogRecord = Annotated[
    Union[
        BuildLogData,
        CodeChanges,
        SecretDetection,
        ScanResult,
        AdditionalInfoAgent,
        AdditionalInfoController,
        DependencyData,
    ],
    Field(discriminator="type"),
]

# Process-wide deserializer for inbound payloads
TYPED_LOG_ADAPTER: TypeAdapter[TypedLogRecord] = TypeAdapter(TypedLogRecord)

LOG_TYPES: frozenset[str] = frozenset({
    "build_log_data",
    "code_changes",
    "secret_detection",
    "sast_scanning",
    "additional_info_agent",
    "additional_info_controller",
    "dependency_data",
})

# Producers sometimes double-encode the body as a JSON string
_MAX_UNESCAPE_DEPTH = 5


def _unescape(raw: str) -> str:
    """Peel off up to five layers of JSON-string wrapping."""
    current = raw.strip()
    depth = 0
    while current.startswith('"') and current.endswith('"') and depth < _MAX_UNESCAPE_DEPTH:
        try:
            decoded = json.loads(current)
        except json.JSONDecodeError:
            logger.warning("Failed to unescape JSON payload, using it as is")
            break
        if not isinstance(decoded, str):
            break
        current = decoded.strip()
        depth += 1
    return current


def _select_object(node: Any) -> dict[str, Any]:
    if isinstance(node, list):
        if not node:
            raise LogParseError("Empty JSON array received")
        node = node[0]
    if not isinstance(node, dict):
        raise LogParseError(f"Invalid JSON structure: expected an object, got {type(node).__name__}")
    return node


def parse_typed_log(raw: str | bytes) -> TypedLogRecord:
    """Turn one inbound message body into its typed log variant.

    Accepts a JSON object, a JSON array (its first element is used) and
    either of those wrapped in one or more JSON string layers.

    Args:
        raw: Message body as received from the queue.

    Returns:
        The matching TypedLogRecord variant.

    Raises:
        LogParseError: If the body is not JSON, has no ``type``, names an
            unknown type, or fails validation.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    cleaned = _unescape(raw)
    try:
        node = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise LogParseError(f"Payload is not valid JSON: {e}") from e

    payload = _select_object(node)
    log_type = payload.get("type")
    if log_type is None:
        raise LogParseError("Missing 'type' property in payload")
    if not isinstance(log_type, str):
        raise LogParseError(f"Invalid 'type' property: expected a string, got {type(log_type).__name__}")
    if log_type not in LOG_TYPES:
        raise LogParseError(f"Unknown log type: {log_type!r}")

    try:
        record = TYPED_LOG_ADAPTER.validate_python(payload)
    except PydanticValidationError as e:
        raise LogParseError(f"Invalid {log_type} payload: {e}") from e
    logger.debug(
        "Parsed typed log: type=%s job=%s build=%s timestamp=%s",
        record.type, record.job_name, record.build_number, record.timestamp,
    )
    return record
