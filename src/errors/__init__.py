"""Error types for the CI chat memory.

Error categories:
- ValidationError: precondition violations (fail fast at the call boundary)
- PayloadDecodeError: corrupt GZIP/Base64 payload fields
- LogParseError: inbound payloads that are not a known typed log
"""

from src.errors.domain import (
    DomainError,
    LogParseError,
    PayloadDecodeError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "PayloadDecodeError",
    "LogParseError",
]
