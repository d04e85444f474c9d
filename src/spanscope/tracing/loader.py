"""Load span records from files.

Accepted layouts:

- a JSON array of span records,
- a JSON object holding the records under ``spans`` (the trace query
  service's search result shape),
- JSON Lines, one span record per line.

This is the input boundary: records are validated here via
:meth:`Span.from_dict` so the engine can assume well-formed timestamps.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from spanscope.errors import SpanParseError, TraceFileError
from spanscope.tracing.types import Span

logger = logging.getLogger(__name__)


def load_spans(path: str | Path, *, strict: bool = False) -> list[Span]:
    """Read every span record in *path*.

    Args:
        path: A ``.json`` or ``.jsonl`` file.
        strict: Raise on the first malformed record instead of skipping it.

    Raises:
        TraceFileError: if the file cannot be read or is not valid JSON.
        SpanParseError: in strict mode, for a malformed record.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TraceFileError(f"Cannot read trace file: {exc}", path=str(path)) from exc

    records = _decode_records(text, path)
    return spans_from_records(records, strict=strict)


def spans_from_records(records: list[Any], *, strict: bool = False) -> list[Span]:
    """Convert raw record dicts into :class:`Span` objects."""
    spans: list[Span] = []
    for index, raw in enumerate(records):
        if not isinstance(raw, dict):
            if strict:
                raise SpanParseError(f"Record {index} is not an object")
            logger.warning("Skipping record %d: not an object", index)
            continue
        try:
            spans.append(Span.from_dict(raw))
        except SpanParseError:
            if strict:
                raise
            logger.warning("Skipping malformed span record %d", index, exc_info=True)
    return spans


def _decode_records(text: str, path: Path) -> list[Any]:
    stripped = text.strip()
    if not stripped:
        return []

    if path.suffix != ".jsonl":
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        else:
            if isinstance(data, list):
                return data
            if isinstance(data, dict):
                spans = data.get("spans")
                if isinstance(spans, list):
                    return spans
                return [data]

    records: list[Any] = []
    bad_lines = 0
    for line in stripped.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError:
            bad_lines += 1
            continue

    if bad_lines and not records:
        raise TraceFileError(f"{path} is neither JSON nor JSON Lines", path=str(path))
    if bad_lines:
        logger.debug("Skipped %d undecodable line(s) in %s", bad_lines, path)
    return records
