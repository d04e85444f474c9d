"""Tests for the trace alignment engine."""

from __future__ import annotations

import pytest

from spanscope.errors import ConfigurationError
from spanscope.tracing.analysis import comparison
from spanscope.tracing.analysis.comparison import (
    ComparisonOptions,
    align_span_sequences,
    calculate_span_similarity,
    compare_traces,
    duration_similarity,
    flatten_aligned_tree,
    get_comparison_type_info,
)
from spanscope.tracing.analysis.tool_similarity import ToolSimilarityConfig
from spanscope.tracing.analysis.views import ComparisonType
from spanscope.tracing.tree import build_span_tree, count_spans
from tests.helpers.fixtures import (
    agent_attrs,
    llm_attrs,
    make_categorized,
    make_span,
    make_tree,
    tool_attrs,
)


def _run_tree():  # noqa: ANN202
    return make_tree(
        make_span("root", start=0, end=3000, attributes=agent_attrs()),
        make_span("llm1", start=10, end=1000, parent="root", attributes=llm_attrs()),
        make_span(
            "tool", start=1100, end=1500, parent="root",
            attributes=tool_attrs("read_file", {"path": "a.py"}),
        ),
        make_span("llm2", start=1600, end=2900, parent="root", attributes=llm_attrs()),
        make_span("sub", start=1110, end=1200, parent="tool", name="fs.read"),
    )


def _types(pairs) -> list[ComparisonType]:  # noqa: ANN001
    return [p.type for p in pairs]


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


class TestSpanSimilarity:
    def test_identical_spans_score_one(self) -> None:
        a = make_categorized("a", name="chat", attributes=llm_attrs(), start=0, end=500)
        b = make_categorized("b", name="chat", attributes=llm_attrs(), start=900, end=1400)
        assert calculate_span_similarity(a, b) == pytest.approx(1.0)

    def test_identical_plain_spans_score_one(self) -> None:
        a = make_categorized("a", name="db.query", start=0, end=100)
        b = make_categorized("b", name="db.query", start=0, end=100)
        assert calculate_span_similarity(a, b) == pytest.approx(1.0)

    def test_weights(self) -> None:
        # same category only, different models, duration ratio 0.6
        a = make_categorized("a", name="chat", attributes=llm_attrs("m1"), start=0, end=600)
        b = make_categorized("b", name="callModel", attributes={"gen_ai.request.model": "m2"}, end=1000)
        assert calculate_span_similarity(a, b) == pytest.approx(0.39)

    def test_operation_attribute_preferred_over_name(self) -> None:
        a = make_categorized("a", name="x", attributes=llm_attrs("m1"))
        b = make_categorized("b", name="y", attributes=llm_attrs("m2"))
        # category + operation + duration, models differ
        assert calculate_span_similarity(a, b) == pytest.approx(0.75)

    def test_any_identity_attribute_matches(self) -> None:
        a = make_categorized("a", name="chat", attributes={**llm_attrs("m1"), "gen_ai.agent.name": "p"})
        b = make_categorized("b", name="chat", attributes={**llm_attrs("m2"), "gen_ai.agent.name": "p"})
        assert calculate_span_similarity(a, b) == pytest.approx(1.0)

    def test_identity_missing_on_one_side(self) -> None:
        a = make_categorized("a", name="db.query", attributes={"gen_ai.agent.name": "p"})
        b = make_categorized("b", name="db.query")
        assert calculate_span_similarity(a, b) == pytest.approx(0.75)

    def test_plain_spans_with_different_names(self) -> None:
        a = make_categorized("a", name="db.query", start=0, end=100)
        b = make_categorized("b", name="http.request", start=0, end=100)
        # category + duration only
        assert calculate_span_similarity(a, b) == pytest.approx(0.45)

    def test_tool_config_uses_key_arguments(self) -> None:
        a = make_categorized("a", attributes=tool_attrs("read_file", {"path": "a.py"}))
        b = make_categorized("b", attributes=tool_attrs("read_file", {"path": "b.py"}))
        assert calculate_span_similarity(a, b) == pytest.approx(1.0)
        config = ToolSimilarityConfig(key_arguments=["path"])
        assert calculate_span_similarity(a, b, config) == pytest.approx(0.75)

    def test_bounds(self) -> None:
        spans = [
            make_categorized("a", name="chat", attributes=llm_attrs(), end=10),
            make_categorized("b", attributes=tool_attrs("t", {"x": 1}), end=5000),
            make_categorized("c", name="agent.run", attributes=agent_attrs(), end=0),
            make_categorized("d", name="db.query", end=1),
        ]
        config = ToolSimilarityConfig(key_arguments=["x"])
        for left in spans:
            for right in spans:
                for cfg in (None, config):
                    assert 0.0 <= calculate_span_similarity(left, right, cfg) <= 1.0

    def test_duration_similarity(self) -> None:
        assert duration_similarity(100, 400) == pytest.approx(0.25)
        assert duration_similarity(0, 400) == 1.0
        assert duration_similarity(0, 0) == 1.0


# ---------------------------------------------------------------------------
# Alignment
# ---------------------------------------------------------------------------


class TestCompareTraces:
    def test_self_comparison(self) -> None:
        tree = _run_tree()
        result = compare_traces(tree, tree)
        total = count_spans(tree)
        assert result.stats.matched == total
        assert result.stats.modified == 0
        assert result.stats.added == 0
        assert result.stats.removed == 0
        assert result.stats.total_left == result.stats.total_right == total

    def test_raw_spans_are_categorized(self) -> None:
        raw = build_span_tree([
            make_span("p", name="agent.run"),
            make_span("c", parent="p", name="chat", attributes=llm_attrs()),
        ])
        result = compare_traces(raw, raw)
        assert result.stats.matched == 2
        assert result.aligned_tree[0].left_span.category == "AGENT"  # type: ignore[union-attr]

    def test_left_empty_all_added(self) -> None:
        tree = _run_tree()
        result = compare_traces([], tree)
        flat = flatten_aligned_tree(result.aligned_tree)
        assert {p.type for p in flat} == {ComparisonType.ADDED}
        assert len(flat) == count_spans(tree)
        assert result.stats.added == count_spans(tree)
        assert result.stats.total_left == 0

    def test_right_empty_all_removed(self) -> None:
        tree = _run_tree()
        result = compare_traces(tree, [])
        flat = flatten_aligned_tree(result.aligned_tree)
        assert {p.type for p in flat} == {ComparisonType.REMOVED}
        assert result.stats.removed == count_spans(tree)
        assert all(p.right_span is None for p in flat)

    def test_both_empty(self) -> None:
        result = compare_traces([], [])
        assert result.aligned_tree == []
        assert result.stats.to_dict() == {
            "totalLeft": 0, "totalRight": 0, "matched": 0, "added": 0, "removed": 0, "modified": 0,
        }

    def test_inserted_span_detected(self) -> None:
        left = _run_tree()
        right = make_tree(
            make_span("root", start=0, end=3000, attributes=agent_attrs()),
            make_span("llm1", start=10, end=1000, parent="root", attributes=llm_attrs()),
            make_span(
                "tool", start=1100, end=1500, parent="root",
                attributes=tool_attrs("read_file", {"path": "a.py"}),
            ),
            make_span("sub", start=1110, end=1200, parent="tool", name="fs.read"),
            make_span("extra", start=1510, end=1590, parent="root", name="db.query"),
            make_span("llm2", start=1600, end=2900, parent="root", attributes=llm_attrs()),
        )
        result = compare_traces(left, right)
        root = result.aligned_tree[0]
        assert root.type == ComparisonType.MATCHED
        assert _types(root.children) == [
            ComparisonType.MATCHED,
            ComparisonType.MATCHED,
            ComparisonType.ADDED,
            ComparisonType.MATCHED,
        ]
        assert root.children[2].right_span.span_id == "extra"  # type: ignore[union-attr]
        assert _types(root.children[1].children) == [ComparisonType.MATCHED]
        assert result.stats.added == 1
        assert result.stats.matched == 5

    def test_attribute_change_is_modified(self) -> None:
        left = [make_categorized("a", name="db.query", attributes={"db.rows": 1})]
        right = [make_categorized("b", name="db.query", attributes={"db.rows": 2})]
        pairs = align_span_sequences(left, right)
        assert _types(pairs) == [ComparisonType.MODIFIED]
        assert pairs[0].similarity == pytest.approx(1.0)

    def test_order_preserved_with_deletion(self) -> None:
        a = make_categorized("a", name="chat", attributes=llm_attrs())
        b = make_categorized("b", attributes=tool_attrs("t"))
        c = make_categorized("c", name="db.query")
        pairs = align_span_sequences([a, b, c], [a, c])
        assert _types(pairs) == [ComparisonType.MATCHED, ComparisonType.REMOVED, ComparisonType.MATCHED]
        assert pairs[1].left_span is b

    def test_removed_entry_carries_subtree(self) -> None:
        left = make_tree(
            make_span("p", name="db.query"),
            make_span("c", parent="p", name="chat", attributes=llm_attrs()),
        )
        pairs = align_span_sequences(left, [])
        assert _types(pairs) == [ComparisonType.REMOVED]
        assert _types(pairs[0].children) == [ComparisonType.REMOVED]

    def test_just_above_threshold_aligns(self) -> None:
        # same category and name, different models, very different durations
        left = [make_categorized("a", name="chat", attributes=llm_attrs("m1"), start=0, end=1)]
        right = [make_categorized("b", name="chat", attributes=llm_attrs("m2"), start=0, end=1000)]
        pairs = align_span_sequences(left, right)
        assert _types(pairs) == [ComparisonType.MODIFIED]
        assert pairs[0].similarity == pytest.approx(0.6, abs=1e-3)

    def test_real_low_score_splits(self) -> None:
        left = [make_categorized("a", name="chat", attributes=llm_attrs("m1"), start=0, end=600)]
        right = [make_categorized("b", name="callModel", attributes={"gen_ai.request.model": "m2"}, end=1000)]
        pairs = align_span_sequences(left, right)
        assert sorted(_types(pairs)) == [ComparisonType.ADDED, ComparisonType.REMOVED]
        assert all(p.similarity is None for p in pairs)

    def test_unrelated_plain_spans_split(self) -> None:
        left = [make_categorized("a", name="db.query", start=0, end=100)]
        right = [make_categorized("b", name="http.request", start=0, end=100)]
        pairs = align_span_sequences(left, right)
        assert sorted(_types(pairs)) == [ComparisonType.ADDED, ComparisonType.REMOVED]
        assert all(p.similarity is None for p in pairs)

    def test_deep_traces(self) -> None:
        depth = 3000
        spans = [make_span("n0", start=0, end=depth, name="db.query")]
        spans += [
            make_span(f"n{i}", start=i, end=depth, parent=f"n{i - 1}", name="db.query")
            for i in range(1, depth)
        ]
        tree = make_tree(*spans)
        result = compare_traces(tree, tree)
        assert result.stats.matched == depth


class TestThresholdBoundary:
    @pytest.fixture
    def pair(self):  # noqa: ANN201
        return (
            [make_categorized("a", name="step one")],
            [make_categorized("b", name="step two")],
        )

    def test_exactly_match_threshold_aligns(self, pair, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
        monkeypatch.setattr(comparison, "calculate_span_similarity", lambda *args: 0.6)
        pairs = align_span_sequences(*pair)
        assert _types(pairs) == [ComparisonType.MODIFIED]
        assert pairs[0].similarity == 0.6
        assert pairs[0].left_span is not None and pairs[0].right_span is not None

    def test_below_modified_threshold_splits(self, pair, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
        monkeypatch.setattr(comparison, "calculate_span_similarity", lambda *args: 0.39)
        pairs = align_span_sequences(*pair)
        assert sorted(_types(pairs)) == [ComparisonType.ADDED, ComparisonType.REMOVED]

    def test_modified_band_when_mismatch_is_cheap(self, pair, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
        monkeypatch.setattr(comparison, "calculate_span_similarity", lambda *args: 0.5)
        options = ComparisonOptions(mismatch_penalty=0.0)
        pairs = align_span_sequences(*pair, options=options)
        assert _types(pairs) == [ComparisonType.MODIFIED]
        assert pairs[0].similarity == 0.5

    def test_mismatch_below_modified_splits_even_when_chosen(
        self, pair, monkeypatch: pytest.MonkeyPatch,  # noqa: ANN001
    ) -> None:
        monkeypatch.setattr(comparison, "calculate_span_similarity", lambda *args: 0.3)
        options = ComparisonOptions(mismatch_penalty=0.0)
        pairs = align_span_sequences(*pair, options=options)
        assert _types(pairs) == [ComparisonType.ADDED, ComparisonType.REMOVED]


class TestComparisonOptions:
    def test_defaults(self) -> None:
        opts = ComparisonOptions()
        assert opts.match_threshold == 0.6
        assert opts.modified_threshold == 0.4

    def test_rejects_inverted_thresholds(self) -> None:
        with pytest.raises(ConfigurationError):
            ComparisonOptions(match_threshold=0.3, modified_threshold=0.5)

    def test_rejects_out_of_range(self) -> None:
        with pytest.raises(ConfigurationError):
            ComparisonOptions(match_threshold=1.5)


class TestHelpers:
    def test_flatten_pre_order(self) -> None:
        tree = _run_tree()
        result = compare_traces(tree, tree)
        ids = [p.left_span.span_id for p in flatten_aligned_tree(result.aligned_tree)]  # type: ignore[union-attr]
        assert ids == ["root", "llm1", "tool", "sub", "llm2"]

    def test_type_info(self) -> None:
        assert get_comparison_type_info("added").label == "Added"
        assert get_comparison_type_info(ComparisonType.REMOVED).label == "Removed"

    def test_to_dict_contract(self) -> None:
        tree = _run_tree()
        d = compare_traces(tree, tree).to_dict()
        assert set(d) == {"alignedTree", "stats"}
        first = d["alignedTree"][0]
        assert first["type"] == "matched"
        assert first["leftSpan"]["spanId"] == "root"
        assert first["similarity"] == pytest.approx(1.0)
        assert len(first["children"]) == 3
