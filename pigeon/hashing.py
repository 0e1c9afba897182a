"""Canonical JSON and content hashes (SHA-256 and CIDv1) for structured data."""

import base64
import hashlib
import json
from typing import Any

# CIDv1 header: version 1, raw codec, sha2-256 multihash of 32 bytes.
_CID_V1_RAW_SHA256_PREFIX = bytes([0x01, 0x55, 0x12, 0x20])


def canonicalize(value: Any) -> str:
    """Serialize value to JSON with recursively sorted keys and no whitespace.

    Structurally equal values produce identical strings regardless of the
    insertion order of their mappings.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cid(text: str) -> str:
    """Return the base32 CIDv1 (raw codec) of the UTF-8 encoded text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    encoded = base64.b32encode(_CID_V1_RAW_SHA256_PREFIX + digest).decode("ascii")
    return "b" + encoded.lower().rstrip("=")


def fingerprint(value: Any) -> str:
    """SHA-256 hex digest of value. Strings are hashed verbatim, anything else canonicalized first."""
    if not isinstance(value, str):
        value = canonicalize(value)
    return sha256(value)
