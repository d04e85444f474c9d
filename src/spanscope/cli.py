"""CLI entrypoint for spanscope."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from spanscope import __version__
from spanscope.config import DIRECTIONS, FLOW_MODES, SpanscopeConfig, load_config
from spanscope.errors import SpanscopeError
from spanscope.tracing.analysis import (
    ComparisonType,
    calculate_category_stats,
    compare_traces,
    extract_tool_stats,
    flatten_spans,
    get_comparison_type_info,
    spans_to_flow,
    spans_to_intent_nodes,
)
from spanscope.tracing.categorization import categorize_span_tree
from spanscope.tracing.grouping import get_spans_for_trace, group_spans_by_trace
from spanscope.tracing.loader import load_spans
from spanscope.tracing.tree import build_span_tree, calculate_time_range, max_depth
from spanscope.tracing.types import CategorizedSpan
from spanscope.tracing.utils import format_duration, truncate_text

logger = logging.getLogger(__name__)

_TRACE_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


@click.group()
@click.version_option(__version__, prog_name="spanscope")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (YAML or JSON) used instead of .spanscope/config.yaml",
)
@click.option("--strict", is_flag=True, help="Fail on malformed span records")
@click.pass_context
def main(ctx: click.Context, debug: bool, config_path: Path | None, strict: bool) -> None:
    """Execution graphs and structural diffs for AI-agent traces."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["cli_args"] = {"debug": debug or None, "strict": strict or None}


@contextmanager
def _errors_to_click() -> Iterator[None]:
    try:
        yield
    except SpanscopeError as exc:
        logger.debug("Command failed", exc_info=True)
        raise click.ClickException(str(exc)) from exc


def _config(ctx: click.Context, **cli_args: Any) -> SpanscopeConfig:
    obj = ctx.obj or {}
    args = dict(obj.get("cli_args", {}))
    args.update(cli_args)
    config = load_config(cli_args=args, config_path=obj.get("config_path"))
    if config.debug:
        logging.getLogger("spanscope").setLevel(logging.DEBUG)
    return config


def _load_forest(path: Path, trace_id: str | None, config: SpanscopeConfig) -> list[CategorizedSpan]:
    """Load one trace from *path* as a categorized span tree.

    Without *trace_id* the newest trace in the file is used.
    """
    spans = load_spans(path, strict=config.strict)
    summaries = group_spans_by_trace(spans)
    if trace_id is not None:
        selected = get_spans_for_trace(summaries, trace_id)
        if not selected:
            raise click.ClickException(f"Trace {trace_id} not found in {path}")
    elif summaries:
        if len(summaries) > 1:
            logger.warning(
                "%s holds %d traces; using the newest (%s)",
                path, len(summaries), summaries[0].trace_id,
            )
        selected = summaries[0].spans
    else:
        selected = []
    return categorize_span_tree(build_span_tree(selected))


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@main.command("flow")
@click.argument("trace_file", type=_TRACE_FILE)
@click.option("--trace-id", default=None, help="Trace to draw (default: newest in file)")
@click.option("--direction", type=click.Choice(DIRECTIONS), default=None, help="Layout direction")
@click.option("--mode", type=click.Choice(FLOW_MODES), default=None, help="Flow mode")
@click.pass_context
def flow_cmd(
    ctx: click.Context,
    trace_file: Path,
    trace_id: str | None,
    direction: str | None,
    mode: str | None,
) -> None:
    """Print the execution flow graph of a trace as JSON."""
    with _errors_to_click():
        config = _config(ctx, direction=direction, mode=mode)
        forest = _load_forest(trace_file, trace_id, config)
        total = calculate_time_range(flatten_spans(forest)).duration
        graph = spans_to_flow(forest, total, config.to_flow_options())
    _echo_json(graph.to_dict())


@main.command("compare")
@click.argument("left_file", type=_TRACE_FILE)
@click.argument("right_file", type=_TRACE_FILE)
@click.option("--left-trace-id", default=None, help="Baseline trace (default: newest)")
@click.option("--right-trace-id", default=None, help="Comparison trace (default: newest)")
@click.option("--key-arg", "key_args", multiple=True, help="Tool argument used to match tool calls")
@click.option("--match-threshold", type=float, default=None, help="Similarity needed to align spans")
@click.option("--modified-threshold", type=float, default=None, help="Similarity below which pairs split")
@click.option("--summary", is_flag=True, help="Print a summary table on stderr")
@click.pass_context
def compare_cmd(
    ctx: click.Context,
    left_file: Path,
    right_file: Path,
    left_trace_id: str | None,
    right_trace_id: str | None,
    key_args: tuple[str, ...],
    match_threshold: float | None,
    modified_threshold: float | None,
    summary: bool,
) -> None:
    """Align two traces and print the structural diff as JSON."""
    with _errors_to_click():
        config = _config(
            ctx,
            key_arguments=list(key_args) or None,
            match_threshold=match_threshold,
            modified_threshold=modified_threshold,
        )
        left = _load_forest(left_file, left_trace_id, config)
        right = _load_forest(right_file, right_trace_id, config)
        result = compare_traces(left, right, config.to_tool_config(), config.to_comparison_options())

    _echo_json(result.to_dict())

    if summary:
        table = Table(title="Comparison")
        table.add_column("Type")
        table.add_column("Count", justify="right")
        counts = {
            ComparisonType.MATCHED: result.stats.matched,
            ComparisonType.MODIFIED: result.stats.modified,
            ComparisonType.ADDED: result.stats.added,
            ComparisonType.REMOVED: result.stats.removed,
        }
        for kind, count in counts.items():
            info = get_comparison_type_info(kind)
            table.add_row(f"[{info.color}]{info.label}[/]", str(count))
        table.caption = f"{result.stats.total_left} baseline spans, {result.stats.total_right} comparison spans"
        Console(stderr=True).print(table)


@main.command("stats")
@click.argument("trace_file", type=_TRACE_FILE)
@click.option("--trace-id", default=None, help="Trace to summarise (default: newest in file)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables")
@click.pass_context
def stats_cmd(ctx: click.Context, trace_file: Path, trace_id: str | None, as_json: bool) -> None:
    """Show time spent per category and tool usage for a trace."""
    with _errors_to_click():
        config = _config(ctx)
        forest = _load_forest(trace_file, trace_id, config)

    spans = flatten_spans(forest)
    categories = calculate_category_stats(spans)
    tools = extract_tool_stats(spans)
    time_range = calculate_time_range(spans)

    if as_json:
        _echo_json({
            "spanCount": len(spans),
            "maxDepth": max_depth(forest),
            "duration": time_range.duration,
            "categories": [c.to_dict() for c in categories],
            "tools": [t.to_dict() for t in tools],
        })
        return

    console = Console()
    console.print(
        f"{len(spans)} spans, depth {max_depth(forest)}, {format_duration(time_range.duration)}"
    )

    table = Table(title="Categories")
    table.add_column("Category")
    table.add_column("Spans", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Share", justify="right")
    for stat in categories:
        table.add_row(
            str(stat.category),
            str(stat.count),
            format_duration(stat.total_duration),
            f"{stat.percentage:.1f}%",
        )
    console.print(table)

    if tools:
        tool_table = Table(title="Tools")
        tool_table.add_column("Tool")
        tool_table.add_column("Calls", justify="right")
        tool_table.add_column("Time", justify="right")
        for tool in tools:
            tool_table.add_row(truncate_text(tool.name, 40), str(tool.count), format_duration(tool.total_duration))
        console.print(tool_table)


@main.command("intent")
@click.argument("trace_file", type=_TRACE_FILE)
@click.option("--trace-id", default=None, help="Trace to compress (default: newest in file)")
@click.pass_context
def intent_cmd(ctx: click.Context, trace_file: Path, trace_id: str | None) -> None:
    """Print the trace as runs of same-category work (JSON)."""
    with _errors_to_click():
        config = _config(ctx)
        forest = _load_forest(trace_file, trace_id, config)
        nodes = spans_to_intent_nodes(forest, config.to_flow_options())
    _echo_json([n.to_dict() for n in nodes])


@main.command("traces")
@click.argument("trace_file", type=_TRACE_FILE)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
@click.pass_context
def traces_cmd(ctx: click.Context, trace_file: Path, as_json: bool) -> None:
    """List the traces contained in a span file, newest first."""
    with _errors_to_click():
        config = _config(ctx)
        summaries = group_spans_by_trace(load_spans(trace_file, strict=config.strict))

    if as_json:
        _echo_json([s.to_dict() for s in summaries])
        return

    table = Table(title=f"Traces in {trace_file.name}")
    table.add_column("Trace")
    table.add_column("Service")
    table.add_column("Root span")
    table.add_column("Spans", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Errors")
    for s in summaries:
        table.add_row(
            s.trace_id,
            s.service_name,
            truncate_text(s.root_span_name, 40),
            str(s.span_count),
            format_duration(s.duration),
            "[red]yes[/]" if s.has_errors else "",
        )
    Console().print(table)


if __name__ == "__main__":
    main()
