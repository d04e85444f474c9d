"""Span categorization.

Assigns every span one of five semantic categories following the
OpenTelemetry GenAI semantic conventions, with a name-based fallback for
agents that predate them (e.g. LangGraph):

1. ``status == ERROR``  -> ERROR, overriding every other signal.
2. ``gen_ai.operation.name`` in one of the known operation sets.
3. Case-insensitive substring match on the span name, LLM patterns first,
   then TOOL, then AGENT.
4. Anything else -> OTHER.

All lookup tables are module-level constants; classification is pure and
idempotent.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Any

from spanscope.tracing.types import (
    ATTR_GEN_AI_AGENT_NAME,
    ATTR_GEN_AI_OPERATION_NAME,
    ATTR_GEN_AI_PROVIDER_NAME,
    ATTR_GEN_AI_REQUEST_MODEL,
    ATTR_GEN_AI_SYSTEM,
    ATTR_GEN_AI_TOOL_NAME,
    OPERATION_CHAT,
    OPERATION_CREATE_AGENT,
    OPERATION_EXECUTE_TOOL,
    OPERATION_GENERATE_CONTENT,
    OPERATION_INVOKE_AGENT,
    OPERATION_TEXT_COMPLETION,
    CategorizedSpan,
    Span,
    SpanCategory,
    SpanStatus,
)

AGENT_OPERATIONS = frozenset({OPERATION_CREATE_AGENT, OPERATION_INVOKE_AGENT})
LLM_OPERATIONS = frozenset({OPERATION_CHAT, OPERATION_TEXT_COMPLETION, OPERATION_GENERATE_CONTENT})
TOOL_OPERATIONS = frozenset({OPERATION_EXECUTE_TOOL})

# Ordered: LLM names are the most specific, and tool spans may carry an
# "agent" prefix, so AGENT is checked last.
NAME_PATTERNS: tuple[tuple[SpanCategory, tuple[str, ...]], ...] = (
    (SpanCategory.LLM, ("bedrock", "converse", "callmodel", "llm")),
    (SpanCategory.TOOL, ("executetool", "tool.execute")),
    (SpanCategory.AGENT, ("agent.run", "invoke_agent", "generateresponse", "processinput")),
)


@dataclass(frozen=True, slots=True)
class CategoryMeta:
    """Display metadata for a category."""

    label: str
    color: str
    icon: str


CATEGORY_META: MappingProxyType[SpanCategory, CategoryMeta] = MappingProxyType({
    SpanCategory.AGENT: CategoryMeta(label="Agent", color="indigo", icon="bot"),
    SpanCategory.LLM: CategoryMeta(label="LLM", color="purple", icon="zap"),
    SpanCategory.TOOL: CategoryMeta(label="Tool", color="amber", icon="wrench"),
    SpanCategory.ERROR: CategoryMeta(label="Error", color="red", icon="alert-circle"),
    SpanCategory.OTHER: CategoryMeta(label="Other", color="slate", icon="circle"),
})

#: Attributes each category is expected to carry under the GenAI conventions.
EXPECTED_ATTRIBUTES: MappingProxyType[SpanCategory, tuple[str, ...]] = MappingProxyType({
    SpanCategory.LLM: (ATTR_GEN_AI_OPERATION_NAME, ATTR_GEN_AI_REQUEST_MODEL, ATTR_GEN_AI_SYSTEM),
    SpanCategory.TOOL: (ATTR_GEN_AI_OPERATION_NAME, ATTR_GEN_AI_TOOL_NAME),
    SpanCategory.AGENT: (ATTR_GEN_AI_OPERATION_NAME, ATTR_GEN_AI_AGENT_NAME),
    SpanCategory.ERROR: (),
    SpanCategory.OTHER: (),
})

_SPAN_FIELDS = tuple(f.name for f in fields(Span) if f.name != "children")


@dataclass(slots=True)
class OTelComplianceResult:
    is_compliant: bool
    missing_attributes: list[str]


def get_category_meta(category: SpanCategory) -> CategoryMeta:
    return CATEGORY_META.get(category, CATEGORY_META[SpanCategory.OTHER])


def get_span_category(span: Span) -> SpanCategory:
    """Classify *span*; first matching rule wins."""
    if span.status == SpanStatus.ERROR:
        return SpanCategory.ERROR

    operation = _attr(span, ATTR_GEN_AI_OPERATION_NAME)
    if operation:
        if operation in AGENT_OPERATIONS:
            return SpanCategory.AGENT
        if operation in LLM_OPERATIONS:
            return SpanCategory.LLM
        if operation in TOOL_OPERATIONS:
            return SpanCategory.TOOL

    name = (span.name or "").lower()
    for category, patterns in NAME_PATTERNS:
        if any(p in name for p in patterns):
            return category

    return SpanCategory.OTHER


def build_display_name(span: Span, category: SpanCategory) -> str:
    """Build a human-readable label from the GenAI attributes."""
    operation = _attr(span, ATTR_GEN_AI_OPERATION_NAME)

    if category == SpanCategory.AGENT:
        agent_name = _attr(span, ATTR_GEN_AI_AGENT_NAME) or span.name
        return f"{operation} {agent_name}" if operation else agent_name

    if category == SpanCategory.LLM:
        provider = _attr(span, ATTR_GEN_AI_PROVIDER_NAME)
        model = _attr(span, ATTR_GEN_AI_REQUEST_MODEL)
        short_model = model.split(".")[-1] if model else ""
        parts = [p for p in (operation, provider, short_model) if p]
        return " ".join(parts) if parts else span.name

    if category == SpanCategory.TOOL:
        tool_name = _attr(span, ATTR_GEN_AI_TOOL_NAME) or span.name
        return f"{operation} {tool_name}" if operation else tool_name

    return span.name


def categorize_span(span: Span, children: list[CategorizedSpan] | None = None) -> CategorizedSpan:
    """Return a new :class:`CategorizedSpan` for *span*.

    *children* becomes the new span's children; by default it is empty so
    that a flat categorization never aliases the input's child list.
    """
    category = get_span_category(span)
    values: dict[str, Any] = {name: getattr(span, name) for name in _SPAN_FIELDS}
    return CategorizedSpan(
        **values,
        children=children if children is not None else [],
        category=category,
        category_label=get_category_meta(category).label,
        display_name=build_display_name(span, category),
    )


def categorize_spans(spans: Iterable[Span]) -> list[CategorizedSpan]:
    """Categorize a flat list of spans (children are not carried over)."""
    return [categorize_span(span) for span in spans]


def categorize_span_tree(forest: Sequence[Span]) -> list[CategorizedSpan]:
    """Categorize a span forest, preserving hierarchy and child order."""
    roots = [categorize_span(span) for span in forest]
    stack: list[tuple[Span, CategorizedSpan]] = list(zip(forest, roots))
    while stack:
        source, target = stack.pop()
        for child in source.children:
            categorized = categorize_span(child)
            target.children.append(categorized)
            stack.append((child, categorized))
    return roots


def filter_spans_by_category(
    spans: Sequence[CategorizedSpan],
    categories: Iterable[SpanCategory],
) -> list[CategorizedSpan]:
    """Keep only spans whose category is listed; no categories means no filter."""
    wanted = set(categories)
    if not wanted:
        return list(spans)
    return [span for span in spans if span.category in wanted]


def filter_span_tree_by_category(
    forest: Sequence[CategorizedSpan],
    categories: Iterable[SpanCategory],
) -> list[CategorizedSpan]:
    """Filter a forest by category, keeping ancestors of matching spans.

    A span survives if it matches or any descendant matches.  A matching
    span with no matching descendants keeps its original children.
    """
    wanted = set(categories)
    if not wanted:
        return list(forest)

    # Post-order: decide on children before their parent.
    order: list[CategorizedSpan] = []
    stack: list[CategorizedSpan] = list(forest)
    while stack:
        span = stack.pop()
        order.append(span)
        stack.extend(span.children)  # type: ignore[arg-type]

    kept: dict[int, CategorizedSpan | None] = {}
    for span in reversed(order):
        children = [
            kept[id(c)] for c in span.children if kept.get(id(c)) is not None
        ]
        if span.category in wanted or children:
            kept[id(span)] = categorize_copy(span, children or list(span.children))  # type: ignore[arg-type]
        else:
            kept[id(span)] = None

    return [kept[id(span)] for span in forest if kept[id(span)] is not None]  # type: ignore[misc]


def categorize_copy(span: CategorizedSpan, children: list[CategorizedSpan]) -> CategorizedSpan:
    """Shallow copy of a categorized span with a different children list."""
    values: dict[str, Any] = {name: getattr(span, name) for name in _SPAN_FIELDS}
    return CategorizedSpan(
        **values,
        children=children,
        category=span.category,
        category_label=span.category_label,
        display_name=span.display_name,
    )


def count_by_category(forest: Sequence[CategorizedSpan]) -> dict[SpanCategory, int]:
    """Count spans per category across the whole forest."""
    counts = {category: 0 for category in SpanCategory}
    stack: list[CategorizedSpan] = list(forest)
    while stack:
        span = stack.pop()
        counts[span.category] += 1
        stack.extend(span.children)  # type: ignore[arg-type]
    return counts


# ---------------------------------------------------------------------------
# OTel compliance
# ---------------------------------------------------------------------------

def check_otel_compliance(span: CategorizedSpan) -> OTelComplianceResult:
    """Report which expected GenAI attributes *span* is missing."""
    expected = EXPECTED_ATTRIBUTES.get(span.category, ())
    missing = [key for key in expected if not span.attributes.get(key)]
    return OTelComplianceResult(is_compliant=not missing, missing_attributes=missing)


def has_any_warnings(spans: Iterable[CategorizedSpan]) -> bool:
    return any(not check_otel_compliance(span).is_compliant for span in spans)


def _attr(span: Span, key: str) -> str:
    value = span.attributes.get(key) if span.attributes else None
    return str(value) if value else ""
