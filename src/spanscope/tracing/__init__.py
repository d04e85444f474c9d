"""Tracing package -- span model, tree reconstruction and categorization.

Submodules
~~~~~~~~~~
- :mod:`spanscope.tracing.types` -- span status/category enums, :class:`Span`
  and :class:`CategorizedSpan`.
- :mod:`spanscope.tracing.tree` -- flat spans to ordered trees.
- :mod:`spanscope.tracing.categorization` -- AGENT / LLM / TOOL / ERROR /
  OTHER classification.
- :mod:`spanscope.tracing.grouping` -- trace summaries from flat spans.
- :mod:`spanscope.tracing.loader` -- span records from JSON / JSONL files.
- :mod:`spanscope.tracing.analysis` -- flow graph, comparison and rollups.
"""

from __future__ import annotations

# --- types ----------------------------------------------------------------
from spanscope.tracing.types import (
    CategorizedSpan,
    Span,
    SpanCategory,
    SpanEvent,
    SpanStatus,
    parse_timestamp,
)

# --- tree -----------------------------------------------------------------
from spanscope.tracing.tree import (
    TimeRange,
    build_span_tree,
    calculate_time_range,
    count_spans,
    iter_spans,
    max_depth,
)

# --- categorization -------------------------------------------------------
from spanscope.tracing.categorization import (
    CATEGORY_META,
    categorize_span,
    categorize_span_tree,
    categorize_spans,
    check_otel_compliance,
    filter_span_tree_by_category,
    get_span_category,
)

# --- grouping / loading ---------------------------------------------------
from spanscope.tracing.grouping import TraceSummary, group_spans_by_trace
from spanscope.tracing.loader import load_spans

__all__ = [
    # types
    "CategorizedSpan",
    "Span",
    "SpanCategory",
    "SpanEvent",
    "SpanStatus",
    "parse_timestamp",
    # tree
    "TimeRange",
    "build_span_tree",
    "calculate_time_range",
    "count_spans",
    "iter_spans",
    "max_depth",
    # categorization
    "CATEGORY_META",
    "categorize_span",
    "categorize_span_tree",
    "categorize_spans",
    "check_otel_compliance",
    "filter_span_tree_by_category",
    "get_span_category",
    # grouping / loading
    "TraceSummary",
    "group_spans_by_trace",
    "load_spans",
]
