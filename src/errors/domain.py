"""Typed domain exceptions for the chat memory and log ingestion layers.

Precondition violations at a public call boundary raise ValidationError.
Malformed inbound payloads raise LogParseError or PayloadDecodeError, which
the ingestion layer catches and logs. Storage failures are not wrapped:
SQLAlchemy exceptions propagate to the caller unchanged.

Usage:
    # In the store
    if build_number < 0:
        raise ValidationError("Build number must be non-negative")

    # In the ingestion boundary
    try:
        record = parse_typed_log(raw)
    except LogParseError as e:
        logger.error("Dropping payload: %s", e)
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """A caller violated an operation precondition."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class PayloadDecodeError(DomainError):
    """A GZIP+Base64 payload could not be decoded.

    Attributes:
        field: Name of the payload field being decoded, when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        if field:
            message = f"{field}: {message}"
        super().__init__(message)
        self.field = field


class LogParseError(DomainError):
    """An inbound pipeline payload could not be turned into a typed log."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
