"""Span factories for trace engine tests."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from spanscope.tracing.categorization import categorize_span, categorize_span_tree
from spanscope.tracing.tree import build_span_tree
from spanscope.tracing.types import CategorizedSpan, Span, SpanStatus

BASE_TIME = datetime(2026, 2, 24, 12, 0, 0, tzinfo=UTC)


def ts(offset_ms: float = 0.0) -> datetime:
    """Instant *offset_ms* milliseconds after the fixed base time."""
    return BASE_TIME + timedelta(milliseconds=offset_ms)


def make_span(
    span_id: str,
    *,
    start: float = 0.0,
    end: float = 100.0,
    parent: str | None = None,
    name: str | None = None,
    status: SpanStatus = SpanStatus.OK,
    attributes: dict[str, Any] | None = None,
    trace_id: str = "trace-1",
    duration: float | None = None,
) -> Span:
    """A raw span whose start/end are offsets in ms from :data:`BASE_TIME`."""
    return Span(
        span_id=span_id,
        trace_id=trace_id,
        name=name if name is not None else f"span {span_id}",
        start_time=ts(start),
        end_time=ts(end),
        parent_span_id=parent,
        status=status,
        attributes=dict(attributes or {}),
        duration=duration,
    )


def make_categorized(span_id: str, **kwargs: Any) -> CategorizedSpan:
    return categorize_span(make_span(span_id, **kwargs))


def make_tree(*spans: Span) -> list[CategorizedSpan]:
    """Build and categorize a forest from flat spans."""
    return categorize_span_tree(build_span_tree(spans))


def llm_attrs(model: str = "anthropic.claude-3", provider: str = "aws.bedrock") -> dict[str, Any]:
    return {
        "gen_ai.operation.name": "chat",
        "gen_ai.request.model": model,
        "gen_ai.provider.name": provider,
        "gen_ai.system": provider,
    }


def tool_attrs(tool: str, args: dict[str, Any] | None = None) -> dict[str, Any]:
    attrs: dict[str, Any] = {"gen_ai.operation.name": "execute_tool", "gen_ai.tool.name": tool}
    if args is not None:
        attrs["gen_ai.tool.args"] = json.dumps(args)
    return attrs


def agent_attrs(agent: str = "planner", operation: str = "invoke_agent") -> dict[str, Any]:
    return {"gen_ai.operation.name": operation, "gen_ai.agent.name": agent}


def span_record(
    span_id: str,
    *,
    start: float = 0.0,
    end: float = 100.0,
    parent: str | None = None,
    name: str | None = None,
    status: str = "OK",
    attributes: dict[str, Any] | None = None,
    trace_id: str = "trace-1",
) -> dict[str, Any]:
    """A camelCase span record as delivered by the trace query service."""
    record: dict[str, Any] = {
        "spanId": span_id,
        "traceId": trace_id,
        "name": name if name is not None else f"span {span_id}",
        "startTime": ts(start).isoformat(),
        "endTime": ts(end).isoformat(),
        "status": status,
        "attributes": dict(attributes or {}),
    }
    if parent is not None:
        record["parentSpanId"] = parent
    return record


def write_records(path: Path, records: list[dict[str, Any]], *, jsonl: bool = False) -> Path:
    if jsonl:
        path.write_text("\n".join(json.dumps(r) for r in records) + "\n", encoding="utf-8")
    else:
        path.write_text(json.dumps(records), encoding="utf-8")
    return path


def agent_run_records(trace_id: str = "trace-1") -> list[dict[str, Any]]:
    """A small agent run: invoke_agent root -> LLM, tool, LLM."""
    return [
        span_record(
            "root", start=0, end=3000, name="invoke_agent planner",
            attributes=agent_attrs(), trace_id=trace_id,
        ),
        span_record(
            "llm-1", start=10, end=1000, parent="root", name="chat",
            attributes=llm_attrs(), trace_id=trace_id,
        ),
        span_record(
            "tool-1", start=1100, end=1500, parent="root", name="execute_tool read_file",
            attributes=tool_attrs("read_file", {"path": "a.py"}), trace_id=trace_id,
        ),
        span_record(
            "llm-2", start=1600, end=2900, parent="root", name="chat",
            attributes=llm_attrs(), trace_id=trace_id,
        ),
    ]
