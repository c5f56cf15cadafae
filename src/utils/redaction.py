"""Redaction and truncation of pipeline payloads for safe logging.

Secret-detection payloads carry the very secrets they found, and build-log
payloads can be megabytes long. Anything written to the application log goes
through these helpers first. Key matching is a case-insensitive substring
match.
"""

import json
from typing import Any

# Substring patterns matched case-insensitively against dict keys
_DEFAULT_SENSITIVE_PATTERNS = frozenset({
    "secret", "token", "authorization", "api_key", "password",
    "credential", "private_key",
})

_REDACTED = "***REDACTED***"

# Longest string value kept verbatim in a log preview
DEFAULT_MAX_VALUE_LENGTH = 200

# JSON-string layers peeled off a double-encoded body
_MAX_UNWRAP_DEPTH = 5


def _is_sensitive_key(key: str, sensitive_patterns: frozenset[str]) -> bool:
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in sensitive_patterns)


def _truncate(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    return f"{value[:max_length]}...({len(value)} chars)"


def redact_payload(
    obj: Any,
    sensitive_patterns: frozenset[str] = _DEFAULT_SENSITIVE_PATTERNS,
    max_value_length: int = DEFAULT_MAX_VALUE_LENGTH,
) -> Any:
    """Return a copy of a decoded JSON payload that is safe to log.

    Values under sensitive keys are replaced, long strings are truncated.
    Nested dicts and lists are processed recursively; the input is not
    mutated.

    Args:
        obj: Decoded JSON value (dict, list or scalar).
        sensitive_patterns: Key substrings whose values are replaced.
        max_value_length: Strings longer than this are cut.

    Returns:
        Redacted copy of ``obj``.
    """
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if isinstance(key, str) and _is_sensitive_key(key, sensitive_patterns):
                result[key] = _REDACTED
            else:
                result[key] = redact_payload(value, sensitive_patterns, max_value_length)
        return result
    if isinstance(obj, list):
        return [redact_payload(item, sensitive_patterns, max_value_length) for item in obj]
    if isinstance(obj, str):
        return _truncate(obj, max_value_length)
    return obj


def payload_preview(raw: str, max_length: int = 1000) -> str:
    """Build a one-line, redacted preview of a raw inbound payload.

    Double-encoded bodies are unwrapped before redaction. Falls back to
    plain truncation when the payload is not valid JSON.

    Args:
        raw: Raw message body as received.
        max_length: Maximum length of the returned preview.

    Returns:
        Redacted, truncated preview string.
    """
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return _truncate(str(raw), max_length)
    for _ in range(_MAX_UNWRAP_DEPTH):
        if not isinstance(decoded, str):
            break
        try:
            decoded = json.loads(decoded)
        except json.JSONDecodeError:
            break
    preview = json.dumps(redact_payload(decoded), separators=(",", ":"))
    return _truncate(preview, max_length)
