"""Spanscope: execution graphs and structural diffs for AI-agent traces."""

__version__ = "0.1.0"
