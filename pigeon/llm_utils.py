"""Helpers for reading structured output out of free-form LLM replies."""

import json
import re
from typing import Any

_CODE_FENCE = re.compile(r"```(?:json)?")


def extract_first_json(text: str) -> dict[str, Any]:
    """Parse the first JSON object in an LLM reply, tolerating code fences and chatter.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    start = cleaned.find("{")
    if start < 0:
        raise ValueError("No JSON object in response")
    try:
        obj, _ = json.JSONDecoder().raw_decode(cleaned[start:])
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in response: {exc}") from exc
    if not isinstance(obj, dict):
        raise ValueError("Top-level JSON value is not an object")
    return obj
