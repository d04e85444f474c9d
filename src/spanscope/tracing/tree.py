"""Span tree reconstruction.

Turns the flat, unordered span list delivered by the trace query service
into one or more rooted trees whose children are sorted chronologically.

Traces can nest arbitrarily deep, so every walk in this module uses an
explicit stack instead of native recursion.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
from typing import TypeVar

from spanscope.tracing.types import Span

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Span)


@dataclass(slots=True)
class TimeRange:
    """Global time window covered by a set of spans (epoch milliseconds)."""

    start_time: float
    end_time: float
    duration: float


def build_span_tree(spans: Iterable[Span]) -> list[Span]:
    """Link flat spans into chronologically ordered trees.

    Each input span is cloned with an empty ``children`` list, so the input
    is never mutated.  A span whose ``parent_span_id`` does not resolve to a
    span in the input becomes a root.  Duplicate ``span_id`` values are not
    deduplicated; the last one wins the id lookup.

    Returns:
        The root spans, sorted by start time, each with a fully populated
        and sorted ``children`` tree.
    """
    clones: list[Span] = [replace(span, children=[]) for span in spans]
    if not clones:
        return []

    by_id: dict[str, Span] = {span.span_id: span for span in clones}
    roots: list[Span] = []
    orphans = 0

    for span in clones:
        parent_id = span.parent_span_id
        parent = by_id.get(parent_id) if parent_id else None
        if parent is not None and parent is not span:
            parent.children.append(span)
        else:
            if parent_id:
                orphans += 1
            roots.append(span)

    if orphans:
        logger.debug("Promoted %d span(s) with unresolved parents to roots", orphans)

    sort_span_forest(roots)
    return roots


def sort_span_forest(roots: list[S]) -> None:
    """Sort *roots* and every descendant ``children`` list by start time, in place."""
    stack: list[list[S]] = [roots]
    while stack:
        level = stack.pop()
        level.sort(key=_start_key)
        for span in level:
            if span.children:
                stack.append(span.children)  # type: ignore[arg-type]


def iter_spans(forest: Sequence[S]) -> Iterator[S]:
    """Yield every span in *forest* in pre-order (parent before children)."""
    stack: list[S] = list(reversed(forest))
    while stack:
        span = stack.pop()
        yield span
        if span.children:
            stack.extend(reversed(span.children))  # type: ignore[arg-type]


def iter_spans_with_depth(forest: Sequence[S]) -> Iterator[tuple[S, int]]:
    """Like :func:`iter_spans` but also yields the nesting depth (roots are 0)."""
    stack: list[tuple[S, int]] = [(span, 0) for span in reversed(forest)]
    while stack:
        span, depth = stack.pop()
        yield span, depth
        for child in reversed(span.children):
            stack.append((child, depth + 1))  # type: ignore[arg-type]


def count_spans(forest: Sequence[Span]) -> int:
    """Total number of spans in *forest*, descendants included."""
    return sum(1 for _ in iter_spans(forest))


def max_depth(forest: Sequence[Span]) -> int:
    """Deepest nesting level in *forest* (0 for roots only, -1 when empty)."""
    return max((depth for _, depth in iter_spans_with_depth(forest)), default=-1)


def calculate_time_range(spans: Iterable[Span]) -> TimeRange:
    """Compute the global ``[min start, max end]`` window of *spans*."""
    start = float("inf")
    end = float("-inf")
    for span in spans:
        start = min(start, span.start_ms)
        end = max(end, span.end_ms)
    if start == float("inf"):
        return TimeRange(start_time=0.0, end_time=0.0, duration=0.0)
    return TimeRange(start_time=start, end_time=end, duration=end - start)


def _start_key(span: Span) -> float:
    return span.start_ms
