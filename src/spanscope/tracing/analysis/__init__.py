"""Trace analysis library.

Turns categorized span trees into the structures a rendering layer draws.

Transforms
~~~~~~~~~~
- :func:`spans_to_flow` -- execution-order (or hierarchy) flow graph with a
  layered layout.
- :func:`compare_traces` -- per-level alignment of two span trees.
- :func:`spans_to_intent_nodes` -- consecutive-category compression.

Rollups
~~~~~~~
- :func:`calculate_category_stats`, :func:`extract_tool_stats`.
- :func:`group_tool_spans` -- tool calls grouped by key arguments.

View dataclasses
~~~~~~~~~~~~~~~~
- :class:`FlowGraph`, :class:`FlowNode`, :class:`FlowEdge` -- flow output.
- :class:`AlignedSpanPair`, :class:`TraceComparisonResult` -- diff output.
- :class:`CategoryStats`, :class:`ToolInfo`, :class:`ToolGroup`,
  :class:`IntentNode`.
"""

from __future__ import annotations

from spanscope.tracing.analysis.comparison import (
    MATCH_THRESHOLD,
    MODIFIED_THRESHOLD,
    ComparisonOptions,
    align_span_sequences,
    calculate_span_similarity,
    compare_traces,
    flatten_aligned_tree,
    get_comparison_type_info,
)
from spanscope.tracing.analysis.execution_flow import (
    FlowOptions,
    detect_parallel_execution,
    find_main_flow_spans,
    is_container_span,
    sort_by_start_time,
    spans_to_execution_flow,
    spans_to_flow,
)
from spanscope.tracing.analysis.intent import get_root_container_span, spans_to_intent_nodes
from spanscope.tracing.analysis.layout import LayoutOptions, layered_layout
from spanscope.tracing.analysis.stats import (
    calculate_category_stats,
    extract_tool_name,
    extract_tool_stats,
    flatten_spans,
)
from spanscope.tracing.analysis.tool_similarity import (
    ToolSimilarityConfig,
    calculate_tool_similarity,
    extract_common_arg_keys,
    get_tool_group_stats,
    group_tool_spans,
)
from spanscope.tracing.analysis.views import (
    AlignedSpanPair,
    CategoryStats,
    ComparisonStats,
    ComparisonType,
    EdgeKind,
    FlowEdge,
    FlowGraph,
    FlowNode,
    IntentNode,
    ParallelGroup,
    Position,
    ToolGroup,
    ToolInfo,
    TraceComparisonResult,
)

__all__ = [
    # Flow
    "FlowOptions",
    "LayoutOptions",
    "detect_parallel_execution",
    "find_main_flow_spans",
    "is_container_span",
    "layered_layout",
    "sort_by_start_time",
    "spans_to_execution_flow",
    "spans_to_flow",
    # Comparison
    "MATCH_THRESHOLD",
    "MODIFIED_THRESHOLD",
    "ComparisonOptions",
    "ToolSimilarityConfig",
    "align_span_sequences",
    "calculate_span_similarity",
    "calculate_tool_similarity",
    "compare_traces",
    "extract_common_arg_keys",
    "flatten_aligned_tree",
    "get_comparison_type_info",
    "get_tool_group_stats",
    "group_tool_spans",
    # Rollups
    "calculate_category_stats",
    "extract_tool_name",
    "extract_tool_stats",
    "flatten_spans",
    "get_root_container_span",
    "spans_to_intent_nodes",
    # Views
    "AlignedSpanPair",
    "CategoryStats",
    "ComparisonStats",
    "ComparisonType",
    "EdgeKind",
    "FlowEdge",
    "FlowGraph",
    "FlowNode",
    "IntentNode",
    "ParallelGroup",
    "Position",
    "ToolGroup",
    "ToolInfo",
    "TraceComparisonResult",
]
