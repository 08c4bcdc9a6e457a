"""Lenient scalar parsing for Lounge payloads.

The service sends every scalar as text, even numbers and booleans. These
parsers never raise: a value that cannot be parsed becomes the default from
``DEFAULTS``, so one bad field cannot take down a whole event.

    parse_float  -> 0.0
    parse_int    -> 0
    parse_bool   -> False   ("true" is the only true value)
    parse_list   -> []      (empty text is an empty list)
"""

from __future__ import annotations

import math
from typing import Any

DEFAULTS: dict[str, Any] = {
    "float": 0.0,
    "int": 0,
    "bool": False,
    "list": [],
}


def parse_float(value: Any) -> float:
    """Parse text as a float, falling back to 0.0."""
    if isinstance(value, bool):
        return DEFAULTS["float"]
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        try:
            result = float(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULTS["float"]
    # nan/inf are syntactically valid but meaningless for playback positions
    if not math.isfinite(result):
        return DEFAULTS["float"]
    return result


def parse_int(value: Any) -> int:
    """Parse text as an integer, falling back to 0."""
    if isinstance(value, bool):
        return DEFAULTS["int"]
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return DEFAULTS["int"]


def parse_bool(value: Any) -> bool:
    """Exact match on ``"true"``; anything else is False."""
    if isinstance(value, bool):
        return value
    return value == "true"


def parse_list(value: Any) -> list[str]:
    """Split comma-delimited text into trimmed strings.

    Empty text yields an empty list rather than ``[""]``.
    """
    if isinstance(value, list):
        return [str(item).strip() for item in value]
    if value is None:
        return list(DEFAULTS["list"])
    text = str(value).strip()
    if not text:
        return list(DEFAULTS["list"])
    return [part.strip() for part in text.split(",")]


def parse_text(value: Any) -> str:
    """Coerce to text; None becomes the empty string."""
    if value is None:
        return ""
    return str(value)


def parse_optional_str(value: Any) -> str | None:
    """Treat empty text as absent."""
    if value is None:
        return None
    text = str(value)
    return text or None
