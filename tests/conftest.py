"""Global test fixtures for spanscope."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from tests.helpers.fixtures import agent_run_records, write_records


@pytest.fixture
def agent_run_file(tmp_path: Path) -> Path:
    """A JSON file holding one small agent run."""
    return write_records(tmp_path / "run.json", agent_run_records())


@pytest.fixture(autouse=True)
def _clear_spanscope_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep SPANSCOPE_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("SPANSCOPE_"):
            monkeypatch.delenv(key, raising=False)
