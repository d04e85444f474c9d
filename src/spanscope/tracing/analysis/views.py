"""Data structures produced by the trace analysis passes.

These dataclasses are the outputs handed to a rendering layer.  They are
pure data -- no business logic, no I/O.  ``to_dict`` methods emit the
camelCase shape the rendering layer consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from spanscope.tracing.types import CategorizedSpan, SpanCategory


class EdgeKind(StrEnum):
    """How two flow nodes relate."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    BRANCH = "branch"


class ComparisonType(StrEnum):
    """Relationship of an aligned span pair."""

    MATCHED = "matched"
    MODIFIED = "modified"
    ADDED = "added"
    REMOVED = "removed"


# ---------------------------------------------------------------------------
# Flow graph
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass(slots=True)
class FlowNode:
    """A graph node wrapping one categorized span.

    ``position`` is the top-left corner assigned by the layout.
    """

    id: str
    span: CategorizedSpan
    total_duration: float
    width: float
    height: float
    position: Position = field(default_factory=Position)

    @property
    def category(self) -> SpanCategory:
        return self.span.category

    @property
    def type(self) -> str:
        return str(self.span.category).lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "category": str(self.category),
            "position": {"x": self.position.x, "y": self.position.y},
            "data": {"span": self.span.to_dict(), "totalDuration": self.total_duration},
            "style": {"width": self.width, "height": self.height},
        }


@dataclass(slots=True)
class FlowEdge:
    id: str
    source: str
    target: str
    kind: EdgeKind

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target, "kind": str(self.kind)}


@dataclass(slots=True)
class FlowGraph:
    """Nodes and edges of an execution flow."""

    nodes: list[FlowNode] = field(default_factory=list)
    edges: list[FlowEdge] = field(default_factory=list)

    def node(self, node_id: str) -> FlowNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def edges_of_kind(self, kind: EdgeKind) -> list[FlowEdge]:
        return [e for e in self.edges if e.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


@dataclass(slots=True)
class ParallelGroup:
    """Sibling spans whose execution windows overlap."""

    spans: list[CategorizedSpan]
    start_time: float
    end_time: float


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class AlignedSpanPair:
    """One unit of a structural diff.

    ``left_span`` is present for matched/modified/removed, ``right_span``
    for matched/modified/added.  ``similarity`` is only set when both
    sides are present.
    """

    type: ComparisonType
    left_span: CategorizedSpan | None = None
    right_span: CategorizedSpan | None = None
    similarity: float | None = None
    children: list[AlignedSpanPair] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": str(self.type)}
        if self.left_span is not None:
            d["leftSpan"] = _span_summary(self.left_span)
        if self.right_span is not None:
            d["rightSpan"] = _span_summary(self.right_span)
        if self.similarity is not None:
            d["similarity"] = round(self.similarity, 4)
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        return d


@dataclass(slots=True)
class ComparisonStats:
    total_left: int = 0
    total_right: int = 0
    matched: int = 0
    added: int = 0
    removed: int = 0
    modified: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalLeft": self.total_left,
            "totalRight": self.total_right,
            "matched": self.matched,
            "added": self.added,
            "removed": self.removed,
            "modified": self.modified,
        }


@dataclass(slots=True)
class TraceComparisonResult:
    aligned_tree: list[AlignedSpanPair]
    stats: ComparisonStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "alignedTree": [p.to_dict() for p in self.aligned_tree],
            "stats": self.stats.to_dict(),
        }


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class CategoryStats:
    category: SpanCategory
    count: int
    total_duration: float
    percentage: float  # 0-100, relative to the sum of all category durations

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": str(self.category),
            "count": self.count,
            "totalDuration": self.total_duration,
            "percentage": self.percentage,
        }


@dataclass(slots=True)
class ToolInfo:
    name: str
    count: int
    total_duration: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "count": self.count, "totalDuration": self.total_duration}


@dataclass(slots=True)
class ToolGroup:
    """Tool spans sharing a tool name and the same key-argument values."""

    tool_name: str
    key_args_values: dict[str, Any]
    spans: list[CategorizedSpan] = field(default_factory=list)
    count: int = 0
    total_duration: float = 0.0

    @property
    def avg_duration(self) -> float:
        return self.total_duration / self.count if self.count else 0.0


@dataclass(slots=True)
class IntentNode:
    """A run of consecutive same-category spans in execution order."""

    id: str
    category: SpanCategory
    spans: list[CategorizedSpan]
    count: int
    display_name: str  # e.g. "LLM" or "Tool ×2"
    subtitle: str
    has_warnings: bool
    execution_order: int
    start_index: int
    total_duration: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": str(self.category),
            "spanIds": [s.span_id for s in self.spans],
            "count": self.count,
            "displayName": self.display_name,
            "subtitle": self.subtitle,
            "hasWarnings": self.has_warnings,
            "executionOrder": self.execution_order,
            "startIndex": self.start_index,
            "totalDuration": self.total_duration,
        }


def _span_summary(span: CategorizedSpan) -> dict[str, Any]:
    return {
        "spanId": span.span_id,
        "name": span.name,
        "displayName": span.display_name,
        "category": str(span.category),
        "duration": span.duration_ms,
    }
