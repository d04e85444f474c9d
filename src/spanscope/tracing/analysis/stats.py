"""Category and tool rollups for a categorized trace."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from spanscope.tracing.analysis.views import CategoryStats, ToolInfo
from spanscope.tracing.tree import iter_spans
from spanscope.tracing.types import ATTR_GEN_AI_TOOL_NAME, CategorizedSpan, SpanCategory

TOOL_NAME_PATTERNS = (
    re.compile(r"execute_tool\s+(\S+)", re.IGNORECASE),
    re.compile(r"executeTools,\s*(\S+)", re.IGNORECASE),
    re.compile(r"tool\.execute\s+(\S+)", re.IGNORECASE),
)


def flatten_spans(forest: Sequence[CategorizedSpan]) -> list[CategorizedSpan]:
    """Every span of *forest* in pre-order."""
    return list(iter_spans(forest))


def calculate_category_stats(spans: Iterable[CategorizedSpan]) -> list[CategoryStats]:
    """Per-category counts and durations, longest total first.

    Percentages are relative to the sum of all category durations rather
    than the wall-clock trace length: a model call nested in an agent span
    is counted in both, and this keeps the percentages summing to 100.
    """
    counts: dict[SpanCategory, int] = {}
    durations: dict[SpanCategory, float] = {}
    for span in spans:
        counts[span.category] = counts.get(span.category, 0) + 1
        durations[span.category] = durations.get(span.category, 0.0) + max(span.duration_ms, 0.0)

    total = sum(durations.values())
    stats = [
        CategoryStats(
            category=category,
            count=counts[category],
            total_duration=durations[category],
            percentage=(durations[category] / total) * 100 if total > 0 else 0.0,
        )
        for category in counts
    ]
    stats.sort(key=lambda s: s.total_duration, reverse=True)
    return stats


def extract_tool_name(span: CategorizedSpan) -> str | None:
    """Best-effort tool name of a span.

    Uses ``gen_ai.tool.name`` when present, then well-known name shapes
    (``execute_tool <name>``, ``executeTools, <name>``, ``tool.execute <name>``),
    then the last comma-separated part of the name.
    """
    attr = span.attributes.get(ATTR_GEN_AI_TOOL_NAME)
    if attr:
        return str(attr)

    name = span.display_name or span.name or ""
    for pattern in TOOL_NAME_PATTERNS:
        match = pattern.search(name)
        if match:
            return match.group(1)

    if "," in name:
        last = name.split(",")[-1].strip()
        if last and "agent.node" not in last:
            return last

    return None


def extract_tool_stats(spans: Iterable[CategorizedSpan]) -> list[ToolInfo]:
    """Count and total duration per tool name, most used first."""
    tools: dict[str, ToolInfo] = {}
    for span in spans:
        if span.category != SpanCategory.TOOL:
            continue
        name = extract_tool_name(span)
        if not name:
            continue
        info = tools.get(name)
        if info is None:
            info = tools[name] = ToolInfo(name=name, count=0, total_duration=0.0)
        info.count += 1
        info.total_duration += max(span.duration_ms, 0.0)

    return sorted(tools.values(), key=lambda t: t.count, reverse=True)
