"""Secret scanner findings (``type: secret_detection``).

The scanner runs several times per build over different sources. The run
over the final build log (``data.source == "build_log"``) is the last
message of a build and gates AI analysis.
"""

import json
import logging
from typing import Any, Literal, Self

from src.errors import PayloadDecodeError
from src.models.typed_log import NO_CONTENT_AVAILABLE, DataTypedLog, format_value, is_true
from src.utils.compression import decode_payload

logger = logging.getLogger(__name__)

BUILD_LOG_SOURCE = "build_log"


class SecretDetection(DataTypedLog):
    """Secrets found in one scanned source.

    ``data`` carries ``source``, ``message``, ``content`` (the scanned text)
    and ``secrets`` (secret type -> matched values). ``content`` and
    ``secrets`` may be Base64(GZIP) encoded, flagged by
    ``content_compressed`` / ``secrets_compressed``. A field that cannot be
    decoded is treated as empty.
    """

    type: Literal["secret_detection"] = "secret_detection"

    @property
    def source(self) -> str:
        return (self.data or {}).get("source") or ""

    def _decode_or_empty(self, key: str) -> str:
        encoded = (self.data or {}).get(key)
        if not isinstance(encoded, str) or not encoded:
            logger.warning(
                "Compressed %s is missing or empty for job=%s build=%s",
                key, self.job_name, self.build_number,
            )
            return ""
        try:
            return decode_payload(encoded, field=key)
        except PayloadDecodeError as e:
            logger.warning(
                "Failed to decode %s for job=%s build=%s: %s",
                key, self.job_name, self.build_number, e,
            )
            return ""

    def _content(self) -> str:
        data = self.data or {}
        if is_true(data.get("content_compressed")):
            return self._decode_or_empty("content")
        content = data.get("content")
        return content if isinstance(content, str) else ""

    def _secrets(self) -> dict[str, Any]:
        data = self.data or {}
        if not is_true(data.get("secrets_compressed")):
            secrets = data.get("secrets")
            return secrets if isinstance(secrets, dict) else {}
        decoded = self._decode_or_empty("secrets")
        if not decoded:
            return {}
        try:
            secrets = json.loads(decoded)
        except json.JSONDecodeError as e:
            logger.warning(
                "Decoded secrets are not valid JSON for job=%s build=%s: %s",
                self.job_name, self.build_number, e,
            )
            return {}
        return secrets if isinstance(secrets, dict) else {}

    def content_to_analyze(self) -> str:
        parts = self._error_lines()
        if self.data is None:
            return "".join(parts) if parts else NO_CONTENT_AVAILABLE

        if self.source:
            parts.append(f"Source: {self.source}\n")
        message = self.data.get("message") or ""
        if message:
            parts.append(f"Message: {message}\n")

        content = self._content()
        if content:
            parts.append(f"Content: {content}\n")

        secrets = self._secrets()
        if secrets:
            parts.append("Secrets:\n")
            for secret_type, values in secrets.items():
                parts.append(f"- Type: {secret_type}, Values: {format_value(values)}\n")

        return "".join(parts) if parts else NO_CONTENT_AVAILABLE

    def materialize(self) -> Self:
        data = self.data or {}
        updates: dict[str, Any] = {}
        if is_true(data.get("content_compressed")):
            updates["content"] = self._content()
            updates["content_compressed"] = False
        if is_true(data.get("secrets_compressed")):
            updates["secrets"] = self._secrets()
            updates["secrets_compressed"] = False
        if not updates:
            return self
        return self._with_data(updates)
