"""Tests for span categorization."""

from __future__ import annotations

import pytest

from spanscope.tracing.categorization import (
    CATEGORY_META,
    build_display_name,
    categorize_span,
    categorize_span_tree,
    categorize_spans,
    check_otel_compliance,
    count_by_category,
    filter_span_tree_by_category,
    filter_spans_by_category,
    get_span_category,
    has_any_warnings,
)
from spanscope.tracing.tree import build_span_tree, iter_spans
from spanscope.tracing.types import SpanCategory, SpanStatus
from tests.helpers.fixtures import agent_attrs, llm_attrs, make_span, tool_attrs


class TestGetSpanCategory:
    @pytest.mark.parametrize(
        ("operation", "expected"),
        [
            ("invoke_agent", SpanCategory.AGENT),
            ("create_agent", SpanCategory.AGENT),
            ("chat", SpanCategory.LLM),
            ("text_completion", SpanCategory.LLM),
            ("generate_content", SpanCategory.LLM),
            ("execute_tool", SpanCategory.TOOL),
        ],
    )
    def test_operation_attribute(self, operation: str, expected: SpanCategory) -> None:
        span = make_span("a", name="whatever", attributes={"gen_ai.operation.name": operation})
        assert get_span_category(span) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("BedrockRuntime.Converse", SpanCategory.LLM),
            ("callModel", SpanCategory.LLM),
            ("executeTool search", SpanCategory.TOOL),
            ("tool.execute fetch", SpanCategory.TOOL),
            ("agent.run", SpanCategory.AGENT),
            ("generateResponse", SpanCategory.AGENT),
            ("processInput", SpanCategory.AGENT),
            ("http.request", SpanCategory.OTHER),
        ],
    )
    def test_name_fallback(self, name: str, expected: SpanCategory) -> None:
        assert get_span_category(make_span("a", name=name)) == expected

    def test_llm_pattern_beats_agent_pattern(self) -> None:
        assert get_span_category(make_span("a", name="agent.run llm step")) == SpanCategory.LLM

    def test_unknown_operation_falls_back_to_name(self) -> None:
        span = make_span("a", name="executeTool x", attributes={"gen_ai.operation.name": "embed"})
        assert get_span_category(span) == SpanCategory.TOOL

    @pytest.mark.parametrize("attrs", [llm_attrs(), tool_attrs("t"), agent_attrs(), {}])
    def test_error_overrides_everything(self, attrs: dict) -> None:
        span = make_span("a", name="chat llm", status=SpanStatus.ERROR, attributes=attrs)
        assert get_span_category(span) == SpanCategory.ERROR


class TestDisplayName:
    def test_agent(self) -> None:
        span = make_span("a", name="x", attributes=agent_attrs("planner"))
        assert build_display_name(span, SpanCategory.AGENT) == "invoke_agent planner"

    def test_agent_without_operation(self) -> None:
        span = make_span("a", name="agent.run")
        assert build_display_name(span, SpanCategory.AGENT) == "agent.run"

    def test_llm_short_model(self) -> None:
        span = make_span("a", name="x", attributes=llm_attrs("us.anthropic.claude-3", "aws.bedrock"))
        assert build_display_name(span, SpanCategory.LLM) == "chat aws.bedrock claude-3"

    def test_llm_without_attributes(self) -> None:
        span = make_span("a", name="callModel")
        assert build_display_name(span, SpanCategory.LLM) == "callModel"

    def test_tool(self) -> None:
        span = make_span("a", name="x", attributes=tool_attrs("read_file"))
        assert build_display_name(span, SpanCategory.TOOL) == "execute_tool read_file"

    def test_other_uses_name(self) -> None:
        span = make_span("a", name="http.request", attributes=llm_attrs())
        assert build_display_name(span, SpanCategory.OTHER) == "http.request"


class TestCategorizeSpan:
    def test_fields(self) -> None:
        cs = categorize_span(make_span("a", name="chat", attributes=llm_attrs()))
        assert cs.category == SpanCategory.LLM
        assert cs.category_label == CATEGORY_META[SpanCategory.LLM].label == "LLM"
        assert cs.span_id == "a"

    def test_idempotent(self) -> None:
        span = make_span("a", name="tool.execute fetch")
        first = categorize_span(span)
        second = categorize_span(first)
        assert first.category == second.category
        assert first.display_name == second.display_name

    def test_flat_does_not_alias_children(self) -> None:
        roots = build_span_tree([make_span("p"), make_span("c", parent="p")])
        flat = categorize_spans(roots)
        assert flat[0].children == []


class TestCategorizeSpanTree:
    def test_preserves_hierarchy(self) -> None:
        roots = build_span_tree([
            make_span("p", start=0, end=100, attributes=agent_attrs()),
            make_span("c1", start=10, end=20, parent="p", attributes=llm_attrs()),
            make_span("c2", start=30, end=40, parent="p", attributes=tool_attrs("t")),
        ])
        tree = categorize_span_tree(roots)
        assert tree[0].category == SpanCategory.AGENT
        assert [(c.span_id, c.category) for c in tree[0].children] == [
            ("c1", SpanCategory.LLM),
            ("c2", SpanCategory.TOOL),
        ]

    def test_does_not_mutate_input(self) -> None:
        roots = build_span_tree([make_span("p"), make_span("c", parent="p")])
        categorize_span_tree(roots)
        assert type(roots[0].children[0]).__name__ == "Span"


class TestFilters:
    def _tree(self):  # noqa: ANN202
        return categorize_span_tree(build_span_tree([
            make_span("root", start=0, end=100, name="workflow"),
            make_span("llm", start=10, end=20, parent="root", attributes=llm_attrs()),
            make_span("other", start=30, end=40, parent="root", name="db.query"),
            make_span("tool", start=31, end=32, parent="other", attributes=tool_attrs("t")),
        ]))

    def test_flat_filter(self) -> None:
        flat = list(iter_spans(self._tree()))
        kept = filter_spans_by_category(flat, [SpanCategory.LLM])
        assert [s.span_id for s in kept] == ["llm"]

    def test_flat_filter_empty_categories(self) -> None:
        flat = list(iter_spans(self._tree()))
        assert filter_spans_by_category(flat, []) == flat

    def test_tree_filter_keeps_ancestors(self) -> None:
        filtered = filter_span_tree_by_category(self._tree(), [SpanCategory.TOOL])
        assert [s.span_id for s in iter_spans(filtered)] == ["root", "other", "tool"]

    def test_tree_filter_no_match(self) -> None:
        assert filter_span_tree_by_category(self._tree(), [SpanCategory.ERROR]) == []

    def test_count_by_category(self) -> None:
        counts = count_by_category(self._tree())
        assert counts[SpanCategory.OTHER] == 2
        assert counts[SpanCategory.LLM] == 1
        assert counts[SpanCategory.TOOL] == 1
        assert counts[SpanCategory.ERROR] == 0


class TestOTelCompliance:
    def test_compliant_llm(self) -> None:
        span = categorize_span(make_span("a", attributes=llm_attrs()))
        assert check_otel_compliance(span).is_compliant

    def test_missing_attributes(self) -> None:
        span = categorize_span(make_span("a", name="callModel"))
        result = check_otel_compliance(span)
        assert not result.is_compliant
        assert "gen_ai.request.model" in result.missing_attributes

    def test_other_always_compliant(self) -> None:
        span = categorize_span(make_span("a", name="db.query"))
        assert check_otel_compliance(span).is_compliant
        assert not has_any_warnings([span])
