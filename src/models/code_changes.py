"""Code change payloads (``type: code_changes``)."""

import json
import logging
from typing import Any, Literal, Self

from src.errors import PayloadDecodeError
from src.models.typed_log import NO_CONTENT_AVAILABLE, DataTypedLog, format_value, is_true
from src.utils.compression import decode_payload

logger = logging.getLogger(__name__)


def _format_change(change: dict[str, Any]) -> str:
    return (
        f"- Commit: {format_value(change.get('commit_id', 'N/A'))}"
        f", Author: {format_value(change.get('author', 'Unknown'))}"
        f", Email: {format_value(change.get('author_email', ''))}"
        f", Timestamp: {format_value(change.get('timestamp', ''))}"
        f", Message: {format_value(change.get('message', ''))}"
        f", Files: {format_value(change.get('affected_files', []))}\n"
    )


class CodeChanges(DataTypedLog):
    """Commits that went into a build.

    ``data`` carries ``message``, ``culprits`` and ``changes``. The commit
    list is either a JSON list or, when ``changes_compressed`` is true, a
    Base64(GZIP(JSON list)) string. A compressed list that cannot be decoded
    is rendered raw; one that decodes to something other than a JSON list
    is skipped.
    """

    type: Literal["code_changes"] = "code_changes"

    def _changes(self) -> list[dict[str, Any]] | str | None:
        """Decoded commit list, the raw string on decode failure, or None."""
        data = self.data or {}
        changes = data.get("changes")
        if isinstance(changes, list):
            return changes
        if not (is_true(data.get("changes_compressed")) and isinstance(changes, str) and changes):
            return None
        try:
            decoded = decode_payload(changes, field="changes")
        except PayloadDecodeError as e:
            logger.warning(
                "Failed to decode changes for job=%s build=%s, using raw value: %s",
                self.job_name, self.build_number, e,
            )
            return changes
        try:
            parsed = json.loads(decoded)
        except json.JSONDecodeError as e:
            logger.warning(
                "Decoded changes are not valid JSON for job=%s build=%s: %s",
                self.job_name, self.build_number, e,
            )
            return None
        if not isinstance(parsed, list):
            logger.warning(
                "Decoded changes are not a list for job=%s build=%s",
                self.job_name, self.build_number,
            )
            return None
        return parsed

    def content_to_analyze(self) -> str:
        parts = self._error_lines()
        if self.data is None:
            return "".join(parts) if parts else NO_CONTENT_AVAILABLE

        message = self.data.get("message") or ""
        if message:
            parts.append(f"Message: {message}\n")

        changes = self._changes()
        if isinstance(changes, str):
            parts.append(f"Changes: {changes}\n")
        elif changes:
            parts.append("Changes:\n")
            parts.extend(
                _format_change(change) for change in changes if isinstance(change, dict)
            )

        culprits = self.data.get("culprits") or []
        if culprits:
            parts.append(f"Culprits: {', '.join(str(c) for c in culprits)}\n")

        return "".join(parts) if parts else NO_CONTENT_AVAILABLE

    def materialize(self) -> Self:
        data = self.data or {}
        if not is_true(data.get("changes_compressed")) or not isinstance(data.get("changes"), str):
            return self
        changes = self._changes()
        if not isinstance(changes, list):
            return self
        return self._with_data({"changes": changes, "changes_compressed": False})
