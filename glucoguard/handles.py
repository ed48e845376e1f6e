"""
GlucoGuard Handles

A handle is an opaque 32-byte reference to a ciphertext held by the
ledger, rendered as 0x-prefixed lowercase hex. The all-zero handle is
reserved: it means "no result yet" and never refers to a ciphertext.

Handles derived here are SHA-256 digests of the canonical JSON encoding
of their inputs, so identical inputs always produce identical handles.
"""

import hashlib
import json
import re
from typing import Any, Optional

EMPTY_HANDLE = "0x" + "00" * 32

HANDLE_PATTERN = re.compile(r'^0x[0-9a-f]{64}$')


def canonicalize(obj: Any) -> bytes:
    """
    Encode an object as canonical JSON.

    Keys sorted, compact separators, UTF-8. Only JSON-native types and
    tuples are accepted; anything else raises ValueError.
    """
    return json.dumps(
        _canonical_value(obj),
        separators=(',', ':'),
        sort_keys=True,
        ensure_ascii=False,
    ).encode('utf-8')


def _canonical_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): _canonical_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical_value(v) for v in value]
    if isinstance(value, bytes):
        return "0x" + value.hex()
    raise ValueError(f"Cannot canonicalize type: {type(value)}")


def derive_handle(*parts: Any) -> str:
    """
    Derive a handle from arbitrary JSON-compatible parts.

    Never returns EMPTY_HANDLE (a zero digest would need a SHA-256
    preimage of all zeroes).
    """
    digest = hashlib.sha256(canonicalize(list(parts))).hexdigest()
    return f"0x{digest}"


def normalize_handle(handle: Optional[str]) -> Optional[str]:
    """Lower-case a handle string; None passes through."""
    if handle is None:
        return None
    return handle.strip().lower()


def is_valid_handle(handle: Optional[str]) -> bool:
    """Check that a value is a well-formed handle (empty sentinel included)."""
    return isinstance(handle, str) and bool(HANDLE_PATTERN.match(normalize_handle(handle)))


def is_empty_handle(handle: Optional[str]) -> bool:
    """True for None, the empty string, or the reserved zero handle."""
    if not handle:
        return True
    return normalize_handle(handle) == EMPTY_HANDLE


def has_value(handle: Optional[str]) -> bool:
    """True if the handle refers to a real result."""
    return not is_empty_handle(handle)
