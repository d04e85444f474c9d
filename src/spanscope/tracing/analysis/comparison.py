"""Structural diff of two span trees.

Two runs of the same agent rarely produce identical traces: a retry adds a
tool call, a prompt change swaps a model, a refactor drops a step.  This
module aligns a baseline ("left") tree with a comparison ("right") tree and
labels every span as matched, modified, added or removed.

Alignment is per sibling level, Needleman-Wunsch style::

    dp[i][j] = max(
        dp[i-1][j-1] + (sim if sim >= match_threshold else mismatch_penalty),
        dp[i-1][j]   + gap_penalty,    # left span removed
        dp[i][j-1]   + gap_penalty,    # right span added
    )

Spans are never matched across depths or reordered within a level.  The
children of every aligned pair are aligned in turn; that work is driven by
an explicit queue so deep traces do not exhaust the call stack.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

from spanscope.errors import ConfigurationError
from spanscope.tracing.analysis.tool_similarity import (
    ToolSimilarityConfig,
    calculate_tool_similarity,
)
from spanscope.tracing.analysis.views import (
    AlignedSpanPair,
    ComparisonStats,
    ComparisonType,
    TraceComparisonResult,
)
from spanscope.tracing.categorization import categorize_span_tree
from spanscope.tracing.tree import count_spans
from spanscope.tracing.types import (
    ATTR_GEN_AI_AGENT_NAME,
    ATTR_GEN_AI_OPERATION_NAME,
    ATTR_GEN_AI_REQUEST_MODEL,
    ATTR_GEN_AI_TOOL_NAME,
    CategorizedSpan,
    Span,
    SpanCategory,
)

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.6
MODIFIED_THRESHOLD = 0.4

CATEGORY_WEIGHT = 0.3
OPERATION_WEIGHT = 0.3
IDENTITY_WEIGHT = 0.25
DURATION_WEIGHT = 0.15

IDENTITY_ATTRIBUTES = (ATTR_GEN_AI_AGENT_NAME, ATTR_GEN_AI_REQUEST_MODEL, ATTR_GEN_AI_TOOL_NAME)

_Step = Literal["match", "skip_left", "skip_right"]


@dataclass(slots=True)
class ComparisonOptions:
    """Alignment thresholds and DP scores.

    Pairs scoring at least ``match_threshold`` are aligned; pairs in
    ``[modified_threshold, match_threshold)`` chosen by the DP are still shown
    as modified; anything lower is split into removed + added.
    """

    match_threshold: float = MATCH_THRESHOLD
    modified_threshold: float = MODIFIED_THRESHOLD
    mismatch_penalty: float = -0.5
    gap_penalty: float = -0.1

    def __post_init__(self) -> None:
        if not 0.0 <= self.modified_threshold <= self.match_threshold <= 1.0:
            raise ConfigurationError(
                "Thresholds must satisfy 0 <= modified_threshold <= match_threshold <= 1 "
                f"(got modified={self.modified_threshold}, match={self.match_threshold})"
            )


@dataclass(frozen=True, slots=True)
class ComparisonTypeInfo:
    label: str
    color: str


COMPARISON_TYPE_INFO: dict[ComparisonType, ComparisonTypeInfo] = {
    ComparisonType.MATCHED: ComparisonTypeInfo(label="Matched", color="grey50"),
    ComparisonType.ADDED: ComparisonTypeInfo(label="Added", color="green"),
    ComparisonType.REMOVED: ComparisonTypeInfo(label="Removed", color="red"),
    ComparisonType.MODIFIED: ComparisonTypeInfo(label="Modified", color="yellow"),
}


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------

def calculate_span_similarity(
    left: CategorizedSpan,
    right: CategorizedSpan,
    tool_config: ToolSimilarityConfig | None = None,
) -> float:
    """Score how alike two spans are, in ``[0, 1]``.

    Weights: category 0.30, operation (or name) 0.30, identity 0.25,
    duration ratio 0.15.  For two TOOL spans with a *tool_config* the
    identity term is the key-argument similarity; otherwise it is awarded
    when any of agent, model or tool name match, or when neither span
    carries any of them and their operations are equal.
    """
    score = 0.0

    if left.category == right.category:
        score += CATEGORY_WEIGHT

    if _operation(left) == _operation(right):
        score += OPERATION_WEIGHT

    both_tools = left.category == SpanCategory.TOOL and right.category == SpanCategory.TOOL
    if both_tools and tool_config is not None:
        score += calculate_tool_similarity(left, right, tool_config) * IDENTITY_WEIGHT
    elif _identity_matches(left, right):
        score += IDENTITY_WEIGHT

    score += duration_similarity(left.duration_ms, right.duration_ms) * DURATION_WEIGHT
    return min(score, 1.0)


def duration_similarity(left_ms: float, right_ms: float) -> float:
    """``min / max`` of two durations; 1.0 when either is zero."""
    if left_ms <= 0 or right_ms <= 0:
        return 1.0
    return min(left_ms, right_ms) / max(left_ms, right_ms)


def is_exact_match(left: CategorizedSpan, right: CategorizedSpan) -> bool:
    return (
        left.name == right.name
        and left.category == right.category
        and left.attributes == right.attributes
    )


# ---------------------------------------------------------------------------
# Alignment
# ---------------------------------------------------------------------------

def align_span_sequences(
    left: Sequence[CategorizedSpan],
    right: Sequence[CategorizedSpan],
    tool_config: ToolSimilarityConfig | None = None,
    options: ComparisonOptions | None = None,
) -> list[AlignedSpanPair]:
    """Align two sibling sequences and, recursively, their subtrees."""
    opts = options or ComparisonOptions()
    result: list[AlignedSpanPair] = []

    # Each job aligns one pair of sibling lists into an output list.
    queue: deque[tuple[list[CategorizedSpan], list[CategorizedSpan], list[AlignedSpanPair]]]
    queue = deque([(list(left), list(right), result)])
    while queue:
        lefts, rights, out = queue.popleft()
        for pair in _align_level(lefts, rights, tool_config, opts):
            out.append(pair)
            left_children = _children(pair.left_span) if pair.type != ComparisonType.ADDED else []
            right_children = _children(pair.right_span) if pair.type != ComparisonType.REMOVED else []
            if left_children or right_children:
                queue.append((left_children, right_children, pair.children))

    return result


def _align_level(
    left: list[CategorizedSpan],
    right: list[CategorizedSpan],
    tool_config: ToolSimilarityConfig | None,
    opts: ComparisonOptions,
) -> list[AlignedSpanPair]:
    """Align one sibling level; children are left for the caller."""
    if not left:
        return [AlignedSpanPair(ComparisonType.ADDED, right_span=span) for span in right]
    if not right:
        return [AlignedSpanPair(ComparisonType.REMOVED, left_span=span) for span in left]

    n, m = len(left), len(right)
    sim = [[calculate_span_similarity(ls, rs, tool_config) for rs in right] for ls in left]

    dp = [[0.0] * (m + 1) for _ in range(n + 1)]
    path: list[list[_Step]] = [["skip_left"] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        for j in range(1, m + 1):
            s = sim[i - 1][j - 1]
            match = dp[i - 1][j - 1] + (s if s >= opts.match_threshold else opts.mismatch_penalty)
            skip_left = dp[i - 1][j] + opts.gap_penalty
            skip_right = dp[i][j - 1] + opts.gap_penalty
            if match >= skip_left and match >= skip_right:
                dp[i][j], path[i][j] = match, "match"
            elif skip_left >= skip_right:
                dp[i][j], path[i][j] = skip_left, "skip_left"
            else:
                dp[i][j], path[i][j] = skip_right, "skip_right"

    # Built end-to-first, reversed at the end.
    aligned: list[AlignedSpanPair] = []
    i, j = n, m
    while i > 0 or j > 0:
        if i > 0 and j > 0 and path[i][j] == "match":
            ls, rs, s = left[i - 1], right[j - 1], sim[i - 1][j - 1]
            if s >= opts.match_threshold:
                kind = ComparisonType.MATCHED if is_exact_match(ls, rs) else ComparisonType.MODIFIED
                aligned.append(AlignedSpanPair(kind, left_span=ls, right_span=rs, similarity=s))
            elif s >= opts.modified_threshold:
                aligned.append(
                    AlignedSpanPair(ComparisonType.MODIFIED, left_span=ls, right_span=rs, similarity=s)
                )
            else:
                aligned.append(AlignedSpanPair(ComparisonType.REMOVED, left_span=ls))
                aligned.append(AlignedSpanPair(ComparisonType.ADDED, right_span=rs))
            i -= 1
            j -= 1
        elif i > 0 and (j == 0 or path[i][j] == "skip_left"):
            aligned.append(AlignedSpanPair(ComparisonType.REMOVED, left_span=left[i - 1]))
            i -= 1
        else:
            aligned.append(AlignedSpanPair(ComparisonType.ADDED, right_span=right[j - 1]))
            j -= 1

    aligned.reverse()
    return aligned


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def compare_traces(
    left: Sequence[Span],
    right: Sequence[Span],
    tool_config: ToolSimilarityConfig | None = None,
    options: ComparisonOptions | None = None,
) -> TraceComparisonResult:
    """Compare a baseline forest with a comparison forest.

    Args:
        left: Baseline roots, raw or already categorized.
        right: Comparison roots, raw or already categorized.
        tool_config: Key arguments used to score TOOL spans against each
            other.  Without it tool spans are compared like any other span.
        options: Thresholds and DP scores.

    Returns:
        The aligned tree with per-type counts and per-side span totals.
    """
    left_tree = _ensure_categorized(left)
    right_tree = _ensure_categorized(right)

    aligned = align_span_sequences(left_tree, right_tree, tool_config, options)

    stats = ComparisonStats(total_left=count_spans(left_tree), total_right=count_spans(right_tree))
    for pair in iter_aligned_pairs(aligned):
        if pair.type == ComparisonType.MATCHED:
            stats.matched += 1
        elif pair.type == ComparisonType.MODIFIED:
            stats.modified += 1
        elif pair.type == ComparisonType.ADDED:
            stats.added += 1
        else:
            stats.removed += 1

    logger.debug(
        "Compared %d vs %d spans: %d matched, %d modified, %d added, %d removed",
        stats.total_left, stats.total_right,
        stats.matched, stats.modified, stats.added, stats.removed,
    )
    return TraceComparisonResult(aligned_tree=aligned, stats=stats)


def iter_aligned_pairs(aligned: Sequence[AlignedSpanPair]) -> Iterator[AlignedSpanPair]:
    """Yield every pair in pre-order (parent before its children)."""
    stack = list(reversed(aligned))
    while stack:
        pair = stack.pop()
        yield pair
        stack.extend(reversed(pair.children))


def flatten_aligned_tree(aligned: Sequence[AlignedSpanPair]) -> list[AlignedSpanPair]:
    return list(iter_aligned_pairs(aligned))


def get_comparison_type_info(kind: ComparisonType | str) -> ComparisonTypeInfo:
    return COMPARISON_TYPE_INFO[ComparisonType(kind)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _ensure_categorized(forest: Sequence[Span]) -> list[CategorizedSpan]:
    if all(isinstance(span, CategorizedSpan) for span in forest):
        return list(forest)  # type: ignore[arg-type]
    return categorize_span_tree(forest)


def _children(span: CategorizedSpan | None) -> list[CategorizedSpan]:
    if span is None:
        return []
    return list(span.children)  # type: ignore[arg-type]


def _operation(span: CategorizedSpan) -> str:
    return str(span.attributes.get(ATTR_GEN_AI_OPERATION_NAME) or span.name)


def _identity_matches(left: CategorizedSpan, right: CategorizedSpan) -> bool:
    carried = False
    for key in IDENTITY_ATTRIBUTES:
        lv = left.attributes.get(key)
        rv = right.attributes.get(key)
        if lv and rv and lv == rv:
            return True
        carried = carried or bool(lv) or bool(rv)
    return not carried and _operation(left) == _operation(right)
