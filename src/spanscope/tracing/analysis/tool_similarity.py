"""Tool-argument similarity.

Tool spans that call the same tool with the same *key* arguments are
considered alike.  The key arguments are chosen by the caller (for example
``path`` for a file-reading tool), so two ``read_file`` calls on the same
path group together while calls on different paths do not.

Arguments are read from ``gen_ai.tool.args`` and, failing that,
``gen_ai.tool.input``; either may hold a JSON string or a mapping.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from spanscope.tracing.analysis.views import ToolGroup
from spanscope.tracing.types import (
    ATTR_GEN_AI_TOOL_ARGS,
    ATTR_GEN_AI_TOOL_INPUT,
    ATTR_GEN_AI_TOOL_NAME,
    CategorizedSpan,
    SpanCategory,
)
from spanscope.tracing.tree import iter_spans
from spanscope.tracing.utils import safe_parse_json, stable_json

UNKNOWN_TOOL = "unknown_tool"


@dataclass(slots=True)
class ToolSimilarityConfig:
    """Which tool arguments decide whether two calls are "the same"."""

    key_arguments: list[str] = field(default_factory=list)
    enabled: bool = True

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.key_arguments)


@dataclass(slots=True)
class ToolGroupStats:
    total_tools: int
    unique_tools: int
    most_frequent: ToolGroup | None
    longest_duration: ToolGroup | None


def get_tool_args(span: CategorizedSpan) -> dict[str, Any]:
    """Return the decoded argument mapping of a tool span ({} when absent)."""
    for key in (ATTR_GEN_AI_TOOL_ARGS, ATTR_GEN_AI_TOOL_INPUT):
        raw = span.attributes.get(key)
        if not raw:
            continue
        decoded = safe_parse_json(raw)
        return dict(decoded) if isinstance(decoded, dict) else {}
    return {}


def get_tool_name(span: CategorizedSpan) -> str:
    return str(span.attributes.get(ATTR_GEN_AI_TOOL_NAME) or span.name or UNKNOWN_TOOL)


def extract_common_arg_keys(forest: Sequence[CategorizedSpan]) -> list[str]:
    """Sorted set of argument keys seen on any tool span in *forest*."""
    keys: set[str] = set()
    for span in iter_spans(forest):
        if span.category != SpanCategory.TOOL:
            continue
        for attr in (ATTR_GEN_AI_TOOL_ARGS, ATTR_GEN_AI_TOOL_INPUT):
            decoded = safe_parse_json(span.attributes.get(attr))
            if isinstance(decoded, dict):
                keys.update(str(k) for k in decoded)
    return sorted(keys)


def group_tool_spans(
    forest: Sequence[CategorizedSpan],
    config: ToolSimilarityConfig,
) -> tuple[list[CategorizedSpan], list[ToolGroup]]:
    """Group tool spans by tool name and key-argument values.

    Tool spans are grouped where they appear; the children of a tool span
    are not searched.  The forest itself is returned unchanged alongside the
    groups, which are sorted by descending count.
    """
    spans = list(forest)
    if not config.active:
        return spans, []

    groups: dict[str, ToolGroup] = {}
    stack: list[CategorizedSpan] = list(reversed(spans))
    while stack:
        span = stack.pop()
        if span.category != SpanCategory.TOOL:
            stack.extend(reversed(span.children))  # type: ignore[arg-type]
            continue

        tool_name = get_tool_name(span)
        args = get_tool_args(span)
        key_values = {k: args[k] for k in config.key_arguments if k in args}
        group_key = _group_key(tool_name, key_values)

        group = groups.get(group_key)
        if group is None:
            group = groups[group_key] = ToolGroup(tool_name=tool_name, key_args_values=key_values)
        group.spans.append(span)
        group.count += 1
        group.total_duration += span.elapsed_ms

    return spans, sorted(groups.values(), key=lambda g: g.count, reverse=True)


def calculate_tool_similarity(
    left: CategorizedSpan,
    right: CategorizedSpan,
    config: ToolSimilarityConfig,
) -> float:
    """Score two tool spans in ``[0, 1]``.

    Returns 0 unless both are TOOL spans of the same tool.  With no active
    key arguments any two calls of the same tool score 1; otherwise the
    score is the fraction of key arguments with equal values (an argument
    missing on both sides counts as equal).
    """
    if left.category != SpanCategory.TOOL or right.category != SpanCategory.TOOL:
        return 0.0
    if get_tool_name(left) != get_tool_name(right):
        return 0.0
    if not config.active:
        return 1.0

    left_args = get_tool_args(left)
    right_args = get_tool_args(right)
    matching = sum(
        1
        for key in config.key_arguments
        if stable_json(left_args.get(key)) == stable_json(right_args.get(key))
    )
    return matching / len(config.key_arguments)


def get_tool_group_stats(groups: Sequence[ToolGroup]) -> ToolGroupStats:
    """Summarise groups produced by :func:`group_tool_spans` (count-sorted)."""
    longest: ToolGroup | None = None
    for group in groups:
        if longest is None or group.total_duration > longest.total_duration:
            longest = group
    return ToolGroupStats(
        total_tools=sum(g.count for g in groups),
        unique_tools=len(groups),
        most_frequent=groups[0] if groups else None,
        longest_duration=longest,
    )


def _group_key(tool_name: str, key_values: dict[str, Any]) -> str:
    parts = [f"{k}={stable_json(key_values[k])}" for k in sorted(key_values)]
    return f"{tool_name}::{'::'.join(parts)}"
