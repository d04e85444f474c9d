"""Group flat spans by trace and summarise each trace for list display."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from spanscope.tracing.tree import calculate_time_range
from spanscope.tracing.types import ATTR_GEN_AI_SYSTEM, Span, SpanStatus


@dataclass(slots=True)
class TraceSummary:
    """One row of the trace list: a trace id plus its headline numbers."""

    trace_id: str
    service_name: str
    span_count: int
    root_span_name: str
    start_time: datetime
    duration: float
    has_errors: bool
    spans: list[Span] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "traceId": self.trace_id,
            "serviceName": self.service_name,
            "spanCount": self.span_count,
            "rootSpanName": self.root_span_name,
            "startTime": self.start_time.isoformat(),
            "duration": self.duration,
            "hasErrors": self.has_errors,
        }


def group_spans_by_trace(spans: Iterable[Span]) -> list[TraceSummary]:
    """Group *spans* by ``trace_id``; newest trace first."""
    groups: dict[str, list[Span]] = {}
    for span in spans:
        groups.setdefault(span.trace_id, []).append(span)

    summaries: list[TraceSummary] = []
    for trace_id, trace_spans in groups.items():
        root = next((s for s in trace_spans if not s.parent_span_id), None)
        representative = root or trace_spans[0]
        summaries.append(
            TraceSummary(
                trace_id=trace_id,
                service_name=_service_name(representative),
                span_count=len(trace_spans),
                root_span_name=representative.name or "Unknown",
                start_time=min(s.start_time for s in trace_spans),
                duration=calculate_time_range(trace_spans).duration,
                has_errors=any(s.status == SpanStatus.ERROR for s in trace_spans),
                spans=trace_spans,
            )
        )

    summaries.sort(key=lambda s: s.start_time, reverse=True)
    return summaries


def get_spans_for_trace(summaries: Sequence[TraceSummary], trace_id: str) -> list[Span]:
    """Return the spans of *trace_id*, or an empty list if it is unknown."""
    for summary in summaries:
        if summary.trace_id == trace_id:
            return summary.spans
    return []


def _service_name(span: Span) -> str:
    attrs = span.attributes
    return str(attrs.get("service.name") or attrs.get(ATTR_GEN_AI_SYSTEM) or "unknown")
