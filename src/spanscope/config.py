"""Configuration loading and management."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from spanscope.errors import ConfigurationError
from spanscope.tracing.analysis.comparison import ComparisonOptions
from spanscope.tracing.analysis.execution_flow import FlowOptions
from spanscope.tracing.analysis.tool_similarity import ToolSimilarityConfig

# Load .env files
load_dotenv()

PROJECT_DIR = ".spanscope"
CONFIG_FILENAMES = ("config.yaml", "config.yml", "config.json")
ENV_PREFIX = "SPANSCOPE_"

DIRECTIONS = ("TB", "LR")
FLOW_MODES = ("execution-order", "hierarchy")


@dataclass(slots=True)
class SpanscopeConfig:
    """Merged configuration from all sources.

    Priority: CLI args > env vars > project config > defaults
    """
    # Flow layout
    direction: str = "TB"
    mode: str = "execution-order"
    node_width: float = 200.0
    node_height: float = 70.0
    node_spacing_x: float = 50.0
    node_spacing_y: float = 80.0
    margin: float = 20.0

    # Flow heuristics
    parallel_jitter_ms: float = 10.0
    container_coverage: float = 0.9
    parallel_group_cap_ms: float = 100.0

    # Comparison
    match_threshold: float = 0.6
    modified_threshold: float = 0.4
    mismatch_penalty: float = -0.5
    gap_penalty: float = -0.1
    key_arguments: list[str] = field(default_factory=list)

    # Input / diagnostics
    strict: bool = False
    debug: bool = False

    def to_flow_options(self) -> FlowOptions:
        return FlowOptions(
            direction=self.direction,  # type: ignore[arg-type]
            mode=self.mode,  # type: ignore[arg-type]
            node_width=self.node_width,
            node_height=self.node_height,
            node_spacing_x=self.node_spacing_x,
            node_spacing_y=self.node_spacing_y,
            margin=self.margin,
            parallel_jitter_ms=self.parallel_jitter_ms,
            container_coverage=self.container_coverage,
            parallel_group_cap_ms=self.parallel_group_cap_ms,
        )

    def to_comparison_options(self) -> ComparisonOptions:
        return ComparisonOptions(
            match_threshold=self.match_threshold,
            modified_threshold=self.modified_threshold,
            mismatch_penalty=self.mismatch_penalty,
            gap_penalty=self.gap_penalty,
        )

    def to_tool_config(self) -> ToolSimilarityConfig | None:
        """Tool similarity settings, or ``None`` when no key arguments are set."""
        if not self.key_arguments:
            return None
        return ToolSimilarityConfig(key_arguments=list(self.key_arguments))


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by looking for .spanscope/ or .git/."""
    current = start or Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).exists():
            return parent
        if (parent / ".git").exists():
            return parent
    return None


def load_json_config(path: Path) -> dict[str, Any]:
    """Load a JSON config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError):
        return {}


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config_file(path: Path, *, strict: bool = False) -> dict[str, Any]:
    """Load a YAML or JSON config file by extension.

    With *strict*, an unreadable or unparsable file raises
    :class:`ConfigurationError` instead of yielding ``{}``.
    """
    if not strict:
        if path.suffix == ".json":
            return load_json_config(path)
        return load_yaml_config(path)

    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot load config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def load_config(
    *,
    cli_args: dict[str, Any] | None = None,
    working_dir: str | None = None,
    config_path: str | Path | None = None,
) -> SpanscopeConfig:
    """Load configuration from all sources with proper priority.

    Priority: CLI args > env vars > project config > defaults

    Args:
        cli_args: Values given on the command line; ``None`` entries are
            ignored.
        working_dir: Directory to start the project-root search from.
        config_path: Explicit config file, used instead of the project one.

    Raises:
        ConfigurationError: if a value has the wrong type or is out of range.
    """
    config = SpanscopeConfig()

    # 1. Project-level config (.spanscope/config.yaml or config.json)
    if config_path is not None:
        _apply_dict(config, load_config_file(Path(config_path), strict=True))
    else:
        project_root = find_project_root(Path(working_dir or os.getcwd()))
        if project_root:
            for filename in CONFIG_FILENAMES:
                candidate = project_root / PROJECT_DIR / filename
                if candidate.exists():
                    _apply_dict(config, load_config_file(candidate))
                    break

    # 2. Environment variables (SPANSCOPE_*)
    _apply_dict(config, _env_overrides())

    # 3. CLI args (highest priority)
    _apply_dict(config, cli_args or {})

    validate_config(config)
    return config


def validate_config(config: SpanscopeConfig) -> None:
    """Raise :class:`ConfigurationError` for out-of-range settings."""
    if config.direction not in DIRECTIONS:
        raise ConfigurationError(f"direction must be one of {DIRECTIONS}, got {config.direction!r}")
    if config.mode not in FLOW_MODES:
        raise ConfigurationError(f"mode must be one of {FLOW_MODES}, got {config.mode!r}")
    if not 0.0 < config.container_coverage <= 1.0:
        raise ConfigurationError(
            f"container_coverage must be in (0, 1], got {config.container_coverage}"
        )
    if config.parallel_jitter_ms < 0 or config.parallel_group_cap_ms < 0:
        raise ConfigurationError("parallel tolerances must not be negative")
    for name in ("node_width", "node_height"):
        if getattr(config, name) <= 0:
            raise ConfigurationError(f"{name} must be positive")
    # Threshold ordering is checked by ComparisonOptions itself.
    config.to_comparison_options()


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------

def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _to_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v) for v in value]


_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "direction": lambda v: str(v).upper(),
    "mode": str,
    "node_width": float,
    "node_height": float,
    "node_spacing_x": float,
    "node_spacing_y": float,
    "margin": float,
    "parallel_jitter_ms": float,
    "container_coverage": float,
    "parallel_group_cap_ms": float,
    "match_threshold": float,
    "modified_threshold": float,
    "mismatch_penalty": float,
    "gap_penalty": float,
    "key_arguments": _to_list,
    "strict": _to_bool,
    "debug": _to_bool,
}


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for attr in _CONVERTERS:
        value = os.environ.get(ENV_PREFIX + attr.upper())
        if value:
            overrides[attr] = value
    return overrides


def _apply_dict(config: SpanscopeConfig, data: dict[str, Any]) -> None:
    """Apply dictionary values to config, only for known fields."""
    field_map = {attr: attr for attr in _CONVERTERS}
    field_map.update({
        # Aliases from JSON config
        "nodeWidth": "node_width",
        "nodeHeight": "node_height",
        "nodeSpacingX": "node_spacing_x",
        "nodeSpacingY": "node_spacing_y",
        "parallelJitterMs": "parallel_jitter_ms",
        "containerCoverage": "container_coverage",
        "parallelGroupCapMs": "parallel_group_cap_ms",
        "matchThreshold": "match_threshold",
        "modifiedThreshold": "modified_threshold",
        "mismatchPenalty": "mismatch_penalty",
        "gapPenalty": "gap_penalty",
        "keyArguments": "key_arguments",
    })
    for key, attr in field_map.items():
        if key in data and data[key] is not None:
            try:
                setattr(config, attr, _CONVERTERS[attr](data[key]))
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid value for {key}: {data[key]!r}") from exc
