"""GZIP + Base64 transcoding for oversized pipeline payload fields.

Jenkins pipeline stages compress large fields (raw build logs, commit lists,
secret findings, scan reports) before publishing them. A compressed field
holds Base64(GZIP(UTF-8 text)) and is usually flagged by a sibling
``<field>_compressed: true`` key.
"""

import base64
import binascii
import gzip
import zlib

from src.errors import PayloadDecodeError


def encode_payload(text: str) -> str:
    """Compress text with GZIP and encode the bytes as Base64.

    Args:
        text: Plain text payload.

    Returns:
        ASCII Base64 string of the GZIP-compressed UTF-8 bytes.
    """
    compressed = gzip.compress(text.encode("utf-8"))
    return base64.b64encode(compressed).decode("ascii")


def decode_payload(encoded: str, field: str | None = None) -> str:
    """Decode a Base64(GZIP(text)) payload back to text.

    Args:
        encoded: Base64 string produced by encode_payload or a Jenkins stage.
        field: Optional field name, used in the error message.

    Returns:
        The decompressed UTF-8 text.

    Raises:
        PayloadDecodeError: If the value is empty, not valid Base64, not a
            GZIP stream, or not UTF-8 once inflated.
    """
    if not encoded:
        raise PayloadDecodeError("encoded payload is empty", field=field)
    try:
        compressed = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadDecodeError(f"invalid Base64: {e}", field=field) from e
    try:
        raw = gzip.decompress(compressed)
    except (OSError, EOFError, zlib.error) as e:
        raise PayloadDecodeError(f"invalid GZIP stream: {e}", field=field) from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadDecodeError(f"inflated bytes are not UTF-8: {e}", field=field) from e


def looks_like_base64(value: str | None) -> bool:
    """Heuristic check used for fields that carry no compression flag.

    A value qualifies when it is non-empty, its length is a multiple of four
    and it decodes under the strict Base64 alphabet.
    """
    if not value or len(value) % 4 != 0:
        return False
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True
