"""Build log payloads (``type: build_log_data``).

Each Jenkins build emits two of these: one when the build starts and one
with the final console log. Their joint presence marks the build as complete.
"""

from typing import Literal, Self

from src.models.typed_log import NO_CONTENT_TO_DECODE, DataTypedLog, is_true
from src.utils.compression import decode_payload

BUILD_LOG_TYPE = "build_log_data"

# Substring identifying build-log content in stored message JSON
BUILD_LOG_TYPE_TAG = f'"type":"{BUILD_LOG_TYPE}"'


class BuildLogData(DataTypedLog):
    """Console log of a Jenkins build.

    ``data.raw_log`` holds the log text, Base64(GZIP) encoded when
    ``data.raw_log_compressed`` is true. A corrupt compressed log raises
    PayloadDecodeError: without it there is nothing to analyze.
    """

    type: Literal["build_log_data"] = BUILD_LOG_TYPE

    def _raw_log(self) -> str | None:
        raw_log = (self.data or {}).get("raw_log")
        if not isinstance(raw_log, str):
            return None
        if is_true(self.data.get("raw_log_compressed")):
            return decode_payload(raw_log, field="raw_log")
        return raw_log

    def content_to_analyze(self) -> str:
        parts = self._error_lines()
        raw_log = self._raw_log()
        if raw_log is None:
            return "".join(parts) if parts else NO_CONTENT_TO_DECODE
        parts.append(f"Raw Log: {raw_log}")
        return "".join(parts)

    def materialize(self) -> Self:
        if not is_true((self.data or {}).get("raw_log_compressed")):
            return self
        raw_log = self._raw_log()
        if raw_log is None:
            return self
        return self._with_data({"raw_log": raw_log, "raw_log_compressed": False})
