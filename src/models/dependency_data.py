"""Build file, plugin, artifact and dependency inventory (``type: dependency_data``)."""

import json
import logging
import re
from typing import Any, Literal, Self

from src.errors import PayloadDecodeError
from src.models.typed_log import NO_CONTENT_AVAILABLE, DataTypedLog, format_value, is_true
from src.utils.compression import decode_payload

logger = logging.getLogger(__name__)

_XML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")
_BETWEEN_TAGS = re.compile(r">\s+<")


def minify_xml(xml: str) -> str:
    """Strip comments and collapse whitespace in a build file (pom.xml etc.)."""
    if not xml:
        return xml
    without_comments = _XML_COMMENT.sub("", xml)
    single_spaced = _WHITESPACE.sub(" ", without_comments)
    return _BETWEEN_TAGS.sub("><", single_spaced).strip()


class DependencyData(DataTypedLog):
    """Dependency inventory of a build.

    ``data`` carries ``build_file`` ({content, content_compressed, message}),
    ``plugin_info`` (a map, or a compressed string when
    ``plugin_info_compressed`` is true), ``artifacts`` ({artifacts: [...]})
    and ``dependencies`` ({type, dependencies: [...]}). Undecodable fields
    are treated as empty.
    """

    type: Literal["dependency_data"] = "dependency_data"

    def _decode_or_empty(self, encoded: Any, field: str) -> str:
        if not isinstance(encoded, str) or not encoded:
            logger.warning(
                "Compressed %s is missing or empty for job=%s build=%s",
                field, self.job_name, self.build_number,
            )
            return ""
        try:
            return decode_payload(encoded, field=field)
        except PayloadDecodeError as e:
            logger.warning(
                "Failed to decode %s for job=%s build=%s: %s",
                field, self.job_name, self.build_number, e,
            )
            return ""

    def _build_file(self) -> dict[str, Any]:
        build_file = (self.data or {}).get("build_file")
        return build_file if isinstance(build_file, dict) else {}

    def _build_file_content(self) -> str:
        build_file = self._build_file()
        if "content" not in build_file:
            return ""
        if is_true(build_file.get("content_compressed")):
            return self._decode_or_empty(build_file.get("content"), "build_file.content")
        content = build_file.get("content")
        return content if isinstance(content, str) else ""

    def _plugin_info(self) -> str:
        data = self.data or {}
        if is_true(data.get("plugin_info_compressed")):
            return self._decode_or_empty(data.get("plugin_info"), "plugin_info")
        return json.dumps(data.get("plugin_info", {}), separators=(",", ":"), default=str)

    def content_to_analyze(self) -> str:
        parts = self._error_lines()
        if self.data is None:
            return "".join(parts) if parts else NO_CONTENT_AVAILABLE

        content = self._build_file_content()
        if content:
            parts.append(f"Build File Content: {content}\n")
        build_file_message = self._build_file().get("message") or ""
        if build_file_message:
            parts.append(f"Build File Message: {build_file_message}\n")

        plugin_info = self._plugin_info()
        if plugin_info:
            parts.append(f"Plugin Info: {plugin_info}\n")

        artifacts = (self.data.get("artifacts") or {}).get("artifacts") or []
        if artifacts:
            parts.append("Artifacts:\n")
            for artifact in artifacts:
                parts.append(
                    f"- File: {format_value(artifact.get('fileName', 'N/A'))}"
                    f", Size: {format_value(artifact.get('size', 0))}\n"
                )

        dependencies_map = self.data.get("dependencies") or {}
        dependencies = dependencies_map.get("dependencies") or []
        if dependencies:
            dep_type = dependencies_map.get("type", "unknown")
            parts.append(f"Dependencies (Type: {dep_type}):\n")
            for dep in dependencies:
                parts.append(
                    f"- Group: {format_value(dep.get('group', 'N/A'))}"
                    f", Artifact: {format_value(dep.get('artifact', 'N/A'))}"
                    f", Version: {format_value(dep.get('version', 'N/A'))}\n"
                )

        return "".join(parts) if parts else NO_CONTENT_AVAILABLE

    def materialize(self) -> Self:
        data = self.data or {}
        updates: dict[str, Any] = {}
        build_file = self._build_file()
        if is_true(build_file.get("content_compressed")):
            updates["build_file"] = {
                **build_file,
                "content": minify_xml(self._build_file_content()),
                "content_compressed": False,
            }
        if is_true(data.get("plugin_info_compressed")):
            updates["plugin_info"] = self._plugin_info()
            updates["plugin_info_compressed"] = False
        if not updates:
            return self
        return self._with_data(updates)
