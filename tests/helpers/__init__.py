"""Test helper utilities for building pipeline payloads."""

from tests.helpers.payloads import (
    NOW,
    NOW_ISO,
    build_log_payload,
    make_payload,
    secret_scan_payload,
)

__all__ = [
    "NOW",
    "NOW_ISO",
    "build_log_payload",
    "make_payload",
    "secret_scan_payload",
]
