"""Shared test helpers for the spanscope test suite."""

from __future__ import annotations

from tests.helpers.fixtures import make_categorized, make_span, make_tree, span_record

__all__ = ["make_categorized", "make_span", "make_tree", "span_record"]
