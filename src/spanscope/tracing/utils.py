"""Small formatting and parsing helpers shared by the trace modules."""

from __future__ import annotations

import json
import math
from typing import Any


def format_duration(ms: float | None) -> str:
    """Format a millisecond duration for display (``850ms``, ``1.25s``, ``2m 3.0s``)."""
    if ms is None or math.isnan(ms):
        return "0ms"
    if ms >= 60_000:
        minutes = int(ms // 60_000)
        seconds = (ms % 60_000) / 1000
        return f"{minutes}m {seconds:.1f}s"
    if ms >= 1000:
        return f"{ms / 1000:.2f}s"
    return f"{round(ms)}ms"


def truncate_text(text: str, max_length: int) -> str:
    """Truncate *text* to *max_length* characters, ending with ``...``."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def safe_parse_json(value: Any) -> Any:
    """Decode *value* if it is a JSON string; otherwise return it unchanged.

    Undecodable strings are returned as-is.
    """
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


def stable_json(value: Any) -> str:
    """Canonical JSON text used for value equality across spans."""
    return json.dumps(value, sort_keys=True, default=str)
