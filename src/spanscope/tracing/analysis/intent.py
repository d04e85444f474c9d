"""Intent view: a trace compressed to runs of same-category work.

Spans are flattened in execution order, container spans are dropped (their
children take their place), and consecutive spans of the same category
collapse into one node::

    LLM, TOOL, LLM, TOOL, TOOL, LLM  ->  [LLM] [Tool] [LLM] [Tool ×2] [LLM]

Only *consecutive* spans merge, so the sequence keeps its order.
"""

from __future__ import annotations

from collections.abc import Sequence

from spanscope.tracing.analysis.execution_flow import (
    FlowOptions,
    is_container_span,
    sort_by_start_time,
)
from spanscope.tracing.analysis.views import IntentNode
from spanscope.tracing.categorization import get_category_meta, has_any_warnings
from spanscope.tracing.types import CategorizedSpan

SUBTITLE_NAMES = 3


def spans_to_intent_nodes(
    forest: Sequence[CategorizedSpan],
    options: FlowOptions | None = None,
) -> list[IntentNode]:
    """Compress *forest* into intent nodes."""
    return _group_consecutive(flatten_in_execution_order(forest, options))


def flatten_in_execution_order(
    forest: Sequence[CategorizedSpan],
    options: FlowOptions | None = None,
) -> list[CategorizedSpan]:
    """Pre-order walk with siblings in start order, skipping containers."""
    result: list[CategorizedSpan] = []
    stack: list[tuple[CategorizedSpan, bool]] = [
        (span, True) for span in reversed(sort_by_start_time(forest))
    ]
    while stack:
        span, is_root = stack.pop()
        if not is_container_span(span, options, is_root=is_root):
            result.append(span)
        children = sort_by_start_time(span.children)  # type: ignore[arg-type]
        stack.extend((child, False) for child in reversed(children))
    return result


def get_root_container_span(forest: Sequence[CategorizedSpan]) -> CategorizedSpan | None:
    """First container root, else the first root, else ``None``."""
    for span in forest:
        if is_container_span(span, is_root=True):
            return span
    return forest[0] if forest else None


def _group_consecutive(spans: list[CategorizedSpan]) -> list[IntentNode]:
    nodes: list[IntentNode] = []
    start = 0
    while start < len(spans):
        end = start + 1
        while end < len(spans) and spans[end].category == spans[start].category:
            end += 1
        nodes.append(_make_node(spans[start:end], order=len(nodes), start_index=start))
        start = end
    return nodes


def _make_node(group: list[CategorizedSpan], order: int, start_index: int) -> IntentNode:
    category = group[0].category
    label = get_category_meta(category).label
    count = len(group)
    return IntentNode(
        id=f"intent-{category}-{order}",
        category=category,
        spans=group,
        count=count,
        display_name=f"{label} ×{count}" if count > 1 else label,
        subtitle=_subtitle(group),
        has_warnings=has_any_warnings(group),
        execution_order=order,
        start_index=start_index,
        total_duration=sum(max(s.duration_ms, 0.0) for s in group),
    )


def _subtitle(group: list[CategorizedSpan]) -> str:
    names = ", ".join(s.display_name or s.name for s in group[:SUBTITLE_NAMES])
    return f"{names}..." if len(group) > SUBTITLE_NAMES else names
