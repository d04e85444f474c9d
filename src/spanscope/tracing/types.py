"""Span data structures.

Defines the in-memory representation of execution-trace records ("spans")
produced by instrumented agent runs, plus the category taxonomy assigned by
:mod:`spanscope.tracing.categorization`.

Timestamps are held as timezone-aware :class:`~datetime.datetime` objects.
Durations are always expressed in milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from spanscope.errors import SpanParseError


class SpanStatus(StrEnum):
    """Completion status recorded on a span."""

    OK = "OK"
    ERROR = "ERROR"
    UNSET = "UNSET"


class SpanCategory(StrEnum):
    """Semantic classification of a span."""

    AGENT = "AGENT"
    LLM = "LLM"
    TOOL = "TOOL"
    ERROR = "ERROR"
    OTHER = "OTHER"


# ---------------------------------------------------------------------------
# OpenTelemetry GenAI attribute keys
# ---------------------------------------------------------------------------

ATTR_GEN_AI_OPERATION_NAME = "gen_ai.operation.name"
ATTR_GEN_AI_AGENT_NAME = "gen_ai.agent.name"
ATTR_GEN_AI_PROVIDER_NAME = "gen_ai.provider.name"
ATTR_GEN_AI_REQUEST_MODEL = "gen_ai.request.model"
ATTR_GEN_AI_TOOL_NAME = "gen_ai.tool.name"
ATTR_GEN_AI_SYSTEM = "gen_ai.system"

# Not yet part of the semantic conventions.
ATTR_GEN_AI_TOOL_ARGS = "gen_ai.tool.args"
ATTR_GEN_AI_TOOL_INPUT = "gen_ai.tool.input"

OPERATION_CREATE_AGENT = "create_agent"
OPERATION_INVOKE_AGENT = "invoke_agent"
OPERATION_CHAT = "chat"
OPERATION_TEXT_COMPLETION = "text_completion"
OPERATION_GENERATE_CONTENT = "generate_content"
OPERATION_EXECUTE_TOOL = "execute_tool"


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class SpanEvent:
    """A named, timestamped sub-record of a span (e.g. a request payload)."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"name": self.name, "attributes": self.attributes}
        if self.timestamp is not None:
            d["timestamp"] = format_timestamp(self.timestamp)
        return d

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SpanEvent:
        ts = raw.get("timestamp") or raw.get("time")
        return cls(
            name=str(raw.get("name", "")),
            attributes=dict(raw.get("attributes") or {}),
            timestamp=parse_timestamp(ts) if ts is not None else None,
        )


@dataclass(slots=True)
class Span:
    """A single recorded unit of work.

    ``children`` is empty on raw input and is populated by
    :func:`~spanscope.tracing.tree.build_span_tree`.  ``duration`` is the
    duration recorded by the instrumentation (milliseconds), when the
    backend supplied one; :attr:`duration_ms` falls back to the wall-clock
    difference between the timestamps.
    """

    span_id: str
    trace_id: str
    name: str
    start_time: datetime
    end_time: datetime
    parent_span_id: str | None = None
    status: SpanStatus = SpanStatus.UNSET
    attributes: dict[str, Any] = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    duration: float | None = None
    children: list[Span] = field(default_factory=list)

    @property
    def start_ms(self) -> float:
        """Start instant as epoch milliseconds."""
        return self.start_time.timestamp() * 1000.0

    @property
    def end_ms(self) -> float:
        """End instant as epoch milliseconds."""
        return self.end_time.timestamp() * 1000.0

    @property
    def elapsed_ms(self) -> float:
        """Wall-clock duration derived from the timestamps."""
        return self.end_ms - self.start_ms

    @property
    def duration_ms(self) -> float:
        """Recorded duration if present, else :attr:`elapsed_ms`."""
        if self.duration is not None:
            return self.duration
        return self.elapsed_ms

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the camelCase record shape, children included."""
        d: dict[str, Any] = {
            "spanId": self.span_id,
            "traceId": self.trace_id,
            "name": self.name,
            "startTime": format_timestamp(self.start_time),
            "endTime": format_timestamp(self.end_time),
            "status": str(self.status),
            "attributes": self.attributes,
        }
        if self.parent_span_id is not None:
            d["parentSpanId"] = self.parent_span_id
        if self.duration is not None:
            d["duration"] = self.duration
        if self.events:
            d["events"] = [e.to_dict() for e in self.events]
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        return d

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Span:
        """Build a :class:`Span` from a raw span record.

        Accepts the camelCase contract of the trace query service as well as
        snake_case keys.  ``durationInNanos`` is converted to milliseconds.

        Raises:
            SpanParseError: if the id or either timestamp is missing or
                cannot be parsed.
        """
        span_id = _first(raw, "spanId", "span_id")
        if span_id in (None, ""):
            raise SpanParseError("Span record has no spanId", field="spanId")
        span_id = str(span_id)

        start_raw = _first(raw, "startTime", "start_time")
        end_raw = _first(raw, "endTime", "end_time")
        if start_raw is None or end_raw is None:
            raise SpanParseError(
                f"Span {span_id} is missing a start or end time",
                span_id=span_id,
                field="startTime" if start_raw is None else "endTime",
            )
        try:
            start_time = parse_timestamp(start_raw)
            end_time = parse_timestamp(end_raw)
        except SpanParseError as exc:
            exc.span_id = span_id
            raise

        parent = _first(raw, "parentSpanId", "parent_span_id")
        duration = _parse_duration(raw, span_id)

        try:
            attributes = dict(raw.get("attributes") or {})
        except (TypeError, ValueError) as exc:
            raise SpanParseError(
                f"Span {span_id} has non-mapping attributes", span_id=span_id, field="attributes",
            ) from exc
        try:
            events = [SpanEvent.from_dict(e) for e in raw.get("events") or [] if isinstance(e, dict)]
        except (TypeError, ValueError) as exc:
            raise SpanParseError(f"Span {span_id} has malformed events", span_id=span_id, field="events") from exc

        return cls(
            span_id=span_id,
            trace_id=str(_first(raw, "traceId", "trace_id") or ""),
            name=str(raw.get("name") or ""),
            start_time=start_time,
            end_time=end_time,
            parent_span_id=str(parent) if parent else None,
            status=parse_status(raw.get("status")),
            attributes=attributes,
            events=events,
            duration=duration,
        )


@dataclass(slots=True)
class CategorizedSpan(Span):
    """A :class:`Span` augmented with its semantic category.

    Created only by the categorizer; treat instances as read-only.
    """

    category: SpanCategory = SpanCategory.OTHER
    category_label: str = "Other"
    display_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = Span.to_dict(self)
        d["category"] = str(self.category)
        d["categoryLabel"] = self.category_label
        d["displayName"] = self.display_name
        return d


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string, epoch-millisecond number, or datetime.

    Naive values are assumed to be UTC.

    Raises:
        SpanParseError: if *value* cannot be interpreted as an instant.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        raise SpanParseError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=UTC)
        except (ValueError, OverflowError, OSError) as exc:
            raise SpanParseError(f"Invalid timestamp: {value!r}") from exc
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise SpanParseError(f"Invalid timestamp: {value!r}") from exc
    else:
        raise SpanParseError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def format_timestamp(dt: datetime) -> str:
    """Format *dt* as a UTC ISO-8601 string with millisecond precision."""
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_status(value: Any) -> SpanStatus:
    """Normalise a raw status value; unknown values become ``UNSET``."""
    if value is None:
        return SpanStatus.UNSET
    try:
        return SpanStatus(str(value).upper())
    except ValueError:
        return SpanStatus.UNSET


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _parse_duration(raw: dict[str, Any], span_id: str) -> float | None:
    """Recorded duration in ms from ``duration`` or ``durationInNanos``."""
    duration = raw.get("duration")
    nanos = raw.get("durationInNanos")
    try:
        if duration is not None:
            return float(duration)
        if nanos:
            return float(nanos) / 1_000_000
    except (TypeError, ValueError) as exc:
        field = "duration" if duration is not None else "durationInNanos"
        raise SpanParseError(
            f"Span {span_id} has an invalid {field}", span_id=span_id, field=field,
        ) from exc
    return None
