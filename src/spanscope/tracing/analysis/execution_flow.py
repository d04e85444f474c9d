"""Execution-flow transformation.

Turns a categorized span tree into a flow graph that reads in execution
order, the way a state-machine console draws a run, rather than as a
parent/child hierarchy:

- siblings at each level are chained by start time (``sequential`` edges),
  and a chain link becomes ``parallel`` when the two windows overlap;
- a span with children gets one ``branch`` edge to its earliest child, then
  its children form the next level;
- container spans (wrappers such as ``invoke_agent`` around a whole run) are
  never drawn -- their children take their place.

The legacy ``hierarchy`` mode draws plain parent -> child edges instead.
Positions come from :func:`~spanscope.tracing.analysis.layout.layered_layout`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

from spanscope.tracing.analysis.layout import Direction, LayoutOptions, layered_layout
from spanscope.tracing.analysis.views import (
    EdgeKind,
    FlowEdge,
    FlowGraph,
    FlowNode,
    ParallelGroup,
    Position,
)
from spanscope.tracing.tree import calculate_time_range, iter_spans
from spanscope.tracing.types import (
    ATTR_GEN_AI_OPERATION_NAME,
    OPERATION_CREATE_AGENT,
    OPERATION_INVOKE_AGENT,
    CategorizedSpan,
)

logger = logging.getLogger(__name__)

FlowMode = Literal["execution-order", "hierarchy"]

CONTAINER_OPERATIONS = frozenset({OPERATION_INVOKE_AGENT, OPERATION_CREATE_AGENT})
CONTAINER_NAME_PATTERNS = ("agent.run", "invoke_agent")


@dataclass(slots=True)
class FlowOptions:
    """Flow transformation and layout settings.

    ``parallel_jitter_ms`` is the overlap tolerated between consecutive
    siblings before they count as parallel.  ``container_coverage`` is the
    fraction of its children's combined window a root must cover to be
    treated as a container.  ``parallel_group_cap_ms`` bounds the slack used
    by :func:`detect_parallel_execution`.
    """

    direction: Direction = "TB"
    mode: FlowMode = "execution-order"
    node_width: float = 200.0
    node_height: float = 70.0
    node_spacing_x: float = 50.0
    node_spacing_y: float = 80.0
    margin: float = 20.0
    parallel_jitter_ms: float = 10.0
    container_coverage: float = 0.9
    parallel_group_cap_ms: float = 100.0

    def layout_options(self) -> LayoutOptions:
        return LayoutOptions(
            direction=self.direction,
            node_width=self.node_width,
            node_height=self.node_height,
            node_sep=self.node_spacing_x,
            rank_sep=self.node_spacing_y,
            margin_x=self.margin,
            margin_y=self.margin,
        )


# ---------------------------------------------------------------------------
# Container detection
# ---------------------------------------------------------------------------

def is_container_span(
    span: CategorizedSpan,
    options: FlowOptions | None = None,
    *,
    is_root: bool | None = None,
) -> bool:
    """Decide whether *span* is a synthetic wrapper around an execution.

    Heuristics, any of which suffices:

    1. ``gen_ai.operation.name`` is ``invoke_agent`` or ``create_agent``.
    2. The name contains ``agent.run`` or ``invoke_agent``.
    3. A root with two or more children whose own duration covers at least
       ``container_coverage`` of the window spanned by those children.

    *is_root* defaults to "has no parent id".
    """
    opts = options or FlowOptions()

    operation = span.attributes.get(ATTR_GEN_AI_OPERATION_NAME) if span.attributes else None
    if operation in CONTAINER_OPERATIONS:
        return True

    name = (span.name or "").lower()
    if any(p in name for p in CONTAINER_NAME_PATTERNS):
        return True

    root = (not span.parent_span_id) if is_root is None else is_root
    if root and len(span.children) > 1:
        children_start = min(c.start_ms for c in span.children)
        children_end = max(c.end_ms for c in span.children)
        children_window = children_end - children_start
        if children_window > 0 and span.elapsed_ms >= children_window * opts.container_coverage:
            return True

    return False


def find_main_flow_spans(
    forest: Sequence[CategorizedSpan],
    options: FlowOptions | None = None,
) -> list[CategorizedSpan]:
    """Return the spans forming the top level of the flow.

    A lone container root is replaced by its children; otherwise every root
    is part of the top level.
    """
    roots = list(forest)
    if len(roots) == 1 and is_container_span(roots[0], options, is_root=True):
        logger.debug("Eliding container root %s", roots[0].span_id)
        return list(roots[0].children)  # type: ignore[arg-type]
    return roots


def sort_by_start_time(spans: Iterable[CategorizedSpan]) -> list[CategorizedSpan]:
    """Stable sort by start instant; the input is left untouched."""
    return sorted(spans, key=lambda s: s.start_ms)


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

def spans_to_flow(
    forest: Sequence[CategorizedSpan],
    total_duration: float | None = None,
    options: FlowOptions | None = None,
) -> FlowGraph:
    """Transform *forest* with the mode selected in *options*."""
    opts = options or FlowOptions()
    if opts.mode == "hierarchy":
        return spans_to_hierarchy_flow(forest, total_duration, opts)
    return spans_to_execution_flow(forest, total_duration, opts)


def spans_to_execution_flow(
    forest: Sequence[CategorizedSpan],
    total_duration: float | None = None,
    options: FlowOptions | None = None,
) -> FlowGraph:
    """Build the execution-order flow graph of *forest*.

    Args:
        forest: Categorized roots, as returned by the tree builder and
            categorizer.
        total_duration: Trace duration in milliseconds, attached to every
            node for relative sizing.  Computed from the spans when omitted.
        options: Layout and heuristic settings.
    """
    opts = options or FlowOptions()
    if total_duration is None:
        total_duration = calculate_time_range(iter_spans(forest)).duration

    main_flow = find_main_flow_spans(forest, opts)
    if not main_flow:
        return FlowGraph()

    graph = FlowGraph()
    # Work stack of (parent, siblings); parent is None for the top level.
    # Popping in reverse keeps the depth-first order of a recursive walk.
    stack: list[tuple[CategorizedSpan | None, list[CategorizedSpan]]] = [(None, main_flow)]
    while stack:
        parent, siblings = stack.pop()
        level = sort_by_start_time(_expand_containers(siblings, opts))
        if not level:
            continue

        if parent is not None:
            graph.edges.append(_make_edge(parent.span_id, level[0].span_id, EdgeKind.BRANCH))

        graph.nodes.extend(_make_node(span, total_duration, opts) for span in level)
        graph.edges.extend(create_sibling_edges(level, opts))

        for span in reversed(level):
            if span.children:
                stack.append((span, list(span.children)))  # type: ignore[arg-type]

    apply_layout(graph, opts)
    return graph


def spans_to_hierarchy_flow(
    forest: Sequence[CategorizedSpan],
    total_duration: float | None = None,
    options: FlowOptions | None = None,
) -> FlowGraph:
    """Legacy mode: every span is a node, edges run parent -> child.

    Child edges whose target belongs to a parallel group are marked
    ``parallel``.
    """
    opts = options or FlowOptions()
    if total_duration is None:
        total_duration = calculate_time_range(iter_spans(forest)).duration

    graph = FlowGraph()
    stack: list[CategorizedSpan] = list(reversed(forest))
    while stack:
        span = stack.pop()
        graph.nodes.append(_make_node(span, total_duration, opts))
        if not span.children:
            continue

        children: list[CategorizedSpan] = list(span.children)  # type: ignore[arg-type]
        parallel_ids = {
            member.span_id
            for group in detect_parallel_execution(children, opts)
            for member in group.spans
        }
        for child in children:
            kind = EdgeKind.PARALLEL if child.span_id in parallel_ids else EdgeKind.SEQUENTIAL
            graph.edges.append(_make_edge(span.span_id, child.span_id, kind))
        stack.extend(reversed(children))

    apply_layout(graph, opts)
    return graph


def create_sibling_edges(
    siblings: Sequence[CategorizedSpan],
    options: FlowOptions | None = None,
) -> list[FlowEdge]:
    """Chain *siblings* in start order.

    A link is ``parallel`` when the next span starts more than
    ``parallel_jitter_ms`` before the current one ends.
    """
    opts = options or FlowOptions()
    ordered = sort_by_start_time(siblings)
    edges: list[FlowEdge] = []
    for current, nxt in zip(ordered, ordered[1:]):
        overlapping = nxt.start_ms < current.end_ms - opts.parallel_jitter_ms
        kind = EdgeKind.PARALLEL if overlapping else EdgeKind.SEQUENTIAL
        edges.append(_make_edge(current.span_id, nxt.span_id, kind))
    return edges


def detect_parallel_execution(
    spans: Sequence[CategorizedSpan],
    options: FlowOptions | None = None,
) -> list[ParallelGroup]:
    """Group siblings whose execution windows overlap.

    A span joins the running group when it starts before the group's end
    plus a slack of 10% of the group's length, capped at
    ``parallel_group_cap_ms``.  Only groups of two or more are returned.
    """
    if len(spans) < 2:
        return []
    opts = options or FlowOptions()

    ordered = sort_by_start_time(spans)
    groups: list[ParallelGroup] = []
    current = [ordered[0]]
    group_end = ordered[0].end_ms

    for span in ordered[1:]:
        slack = min((group_end - current[0].start_ms) * 0.1, opts.parallel_group_cap_ms)
        if span.start_ms < group_end + slack:
            current.append(span)
            group_end = max(group_end, span.end_ms)
            continue
        if len(current) > 1:
            groups.append(ParallelGroup(current, current[0].start_ms, group_end))
        current = [span]
        group_end = span.end_ms

    if len(current) > 1:
        groups.append(ParallelGroup(current, current[0].start_ms, group_end))
    return groups


def apply_layout(graph: FlowGraph, options: FlowOptions | None = None) -> FlowGraph:
    """Assign top-left positions to every node of *graph* in place."""
    opts = options or FlowOptions()
    if not graph.nodes:
        return graph

    centres = layered_layout(
        [n.id for n in graph.nodes],
        [(e.source, e.target) for e in graph.edges],
        opts.layout_options(),
    )
    for node in graph.nodes:
        cx, cy = centres.get(node.id, (node.width / 2, node.height / 2))
        node.position = Position(x=cx - node.width / 2, y=cy - node.height / 2)
    return graph


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _expand_containers(
    siblings: Sequence[CategorizedSpan],
    opts: FlowOptions,
) -> list[CategorizedSpan]:
    """Replace nested container spans by their children, recursively."""
    result: list[CategorizedSpan] = []
    stack: list[CategorizedSpan] = list(reversed(siblings))
    while stack:
        span = stack.pop()
        if is_container_span(span, opts, is_root=False):
            logger.debug("Eliding container span %s", span.span_id)
            stack.extend(reversed(span.children))  # type: ignore[arg-type]
        else:
            result.append(span)
    return result


def _make_node(span: CategorizedSpan, total_duration: float, opts: FlowOptions) -> FlowNode:
    return FlowNode(
        id=span.span_id,
        span=span,
        total_duration=total_duration,
        width=opts.node_width,
        height=opts.node_height,
    )


def _make_edge(source: str, target: str, kind: EdgeKind) -> FlowEdge:
    if kind == EdgeKind.BRANCH:
        edge_id = f"{source}-branch-{target}"
    else:
        edge_id = f"{source}-{target}"
    return FlowEdge(id=edge_id, source=source, target=target, kind=kind)
