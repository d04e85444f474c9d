"""Layered (Sugiyama-style) graph layout.

Positions the nodes of a flow graph in ranks:

1. Break cycles, if any, by dropping back edges.
2. Rank every node by the longest path from a source::

       rank[n] = 0                                   if n has no predecessors
       rank[n] = 1 + max(rank[p] for p in preds(n))  otherwise

3. Split edges spanning several ranks with zero-size dummy nodes.
4. Order each rank with the barycenter heuristic, sweeping down and up a
   few times and keeping the ordering with the fewest edge crossings.
5. Assign coordinates: ranks along the layout direction, nodes spaced
   within a rank, every rank centred against the widest one.

The graph bookkeeping uses :mod:`networkx`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

import networkx as nx

logger = logging.getLogger(__name__)

Direction = Literal["TB", "LR"]


@dataclass(slots=True)
class LayoutOptions:
    """Geometry of a layered layout.

    ``node_sep`` separates nodes inside one rank, ``rank_sep`` separates
    consecutive ranks.
    """

    direction: Direction = "TB"
    node_width: float = 200.0
    node_height: float = 70.0
    node_sep: float = 50.0
    rank_sep: float = 80.0
    margin_x: float = 20.0
    margin_y: float = 20.0
    sweeps: int = 4


@dataclass(frozen=True, slots=True)
class _Dummy:
    source: Hashable
    target: Hashable
    index: int


def layered_layout(
    node_ids: Sequence[str],
    edges: Iterable[tuple[str, str]],
    options: LayoutOptions | None = None,
) -> dict[str, tuple[float, float]]:
    """Compute the centre point of every node.

    Args:
        node_ids: Nodes in their preferred initial order.
        edges: Directed ``(source, target)`` pairs; unknown endpoints and
            self loops are ignored, parallel duplicates collapse.
        options: Geometry; defaults to :class:`LayoutOptions`.

    Returns:
        Mapping of node id to ``(x, y)`` centre coordinates.
    """
    opts = options or LayoutOptions()
    if not node_ids:
        return {}

    graph = nx.DiGraph()
    graph.add_nodes_from(node_ids)
    for source, target in edges:
        if source != target and source in graph and target in graph:
            graph.add_edge(source, target)

    _break_cycles(graph)
    ranks = _assign_ranks(graph)
    layered, layers = _build_layers(graph, ranks, node_ids)
    layers = _order_layers(layered, layers, opts.sweeps)
    return _assign_coordinates(layers, opts)


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def _break_cycles(graph: nx.DiGraph) -> None:
    removed = 0
    while not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        source, target = cycle[-1][0], cycle[-1][1]
        graph.remove_edge(source, target)
        removed += 1
    if removed:
        logger.debug("Dropped %d back edge(s) before layout", removed)


def _assign_ranks(graph: nx.DiGraph) -> dict[Hashable, int]:
    ranks: dict[Hashable, int] = {}
    for node in nx.topological_sort(graph):
        ranks[node] = max((ranks[p] + 1 for p in graph.predecessors(node)), default=0)
    return ranks


def _build_layers(
    graph: nx.DiGraph,
    ranks: dict[Hashable, int],
    node_ids: Sequence[str],
) -> tuple[nx.DiGraph, list[list[Hashable]]]:
    """Insert dummy nodes so every edge joins adjacent ranks."""
    layered = nx.DiGraph()
    max_rank = max(ranks.values(), default=0)
    layers: list[list[Hashable]] = [[] for _ in range(max_rank + 1)]

    for node in node_ids:
        if node not in layered:
            layered.add_node(node, rank=ranks[node], dummy=False)
            layers[ranks[node]].append(node)

    for source, target in graph.edges():
        span = ranks[target] - ranks[source]
        previous: Hashable = source
        for i in range(1, span):
            dummy = _Dummy(source, target, i)
            layered.add_node(dummy, rank=ranks[source] + i, dummy=True)
            layers[ranks[source] + i].append(dummy)
            layered.add_edge(previous, dummy)
            previous = dummy
        layered.add_edge(previous, target)

    return layered, layers


def _order_layers(
    layered: nx.DiGraph,
    layers: list[list[Hashable]],
    sweeps: int,
) -> list[list[Hashable]]:
    best = [list(layer) for layer in layers]
    best_crossings = _count_all_crossings(layered, best)
    current = [list(layer) for layer in layers]

    for sweep in range(sweeps):
        if best_crossings == 0:
            break
        if sweep % 2 == 0:
            for r in range(1, len(current)):
                current[r] = _barycenter_sort(current[r], current[r - 1], layered.predecessors)
        else:
            for r in range(len(current) - 2, -1, -1):
                current[r] = _barycenter_sort(current[r], current[r + 1], layered.successors)

        crossings = _count_all_crossings(layered, current)
        if crossings < best_crossings:
            best = [list(layer) for layer in current]
            best_crossings = crossings

    return best


def _barycenter_sort(
    layer: list[Hashable],
    fixed: list[Hashable],
    neighbours: Callable[[Hashable], Iterable[Hashable]],
) -> list[Hashable]:
    positions = {node: i for i, node in enumerate(fixed)}

    def barycenter(item: tuple[int, Hashable]) -> float:
        index, node = item
        linked = [positions[n] for n in neighbours(node) if n in positions]
        if not linked:
            return float(index)
        return sum(linked) / len(linked)

    # sorted() is stable: ties keep their current relative order.
    return [node for _, node in sorted(enumerate(layer), key=barycenter)]


def _count_all_crossings(layered: nx.DiGraph, layers: list[list[Hashable]]) -> int:
    total = 0
    for r in range(len(layers) - 1):
        upper = {node: i for i, node in enumerate(layers[r])}
        lower = {node: i for i, node in enumerate(layers[r + 1])}
        segments = [
            (upper[u], lower[v])
            for u in layers[r]
            for v in layered.successors(u)
            if v in lower
        ]
        total += count_crossings(segments)
    return total


def count_crossings(segments: Sequence[tuple[int, int]]) -> int:
    """Count crossing pairs among edges between two ordered layers."""
    crossings = 0
    for i in range(len(segments)):
        u1, v1 = segments[i]
        for j in range(i + 1, len(segments)):
            u2, v2 = segments[j]
            if (u1 - u2) * (v1 - v2) < 0:
                crossings += 1
    return crossings


def _assign_coordinates(
    layers: list[list[Hashable]],
    opts: LayoutOptions,
) -> dict[str, tuple[float, float]]:
    vertical = opts.direction != "LR"
    # In-rank extent of a real node, and the step between ranks.
    extent = opts.node_width if vertical else opts.node_height
    rank_extent = opts.node_height if vertical else opts.node_width
    rank_step = rank_extent + opts.rank_sep

    def layer_length(layer: list[Hashable]) -> float:
        real = sum(0.0 if isinstance(n, _Dummy) else extent for n in layer)
        return real + opts.node_sep * max(len(layer) - 1, 0)

    widest = max((layer_length(layer) for layer in layers), default=0.0)
    in_rank_margin = opts.margin_x if vertical else opts.margin_y
    rank_margin = opts.margin_y if vertical else opts.margin_x

    centres: dict[str, tuple[float, float]] = {}
    for r, layer in enumerate(layers):
        cursor = in_rank_margin + (widest - layer_length(layer)) / 2
        rank_centre = rank_margin + r * rank_step + rank_extent / 2
        for node in layer:
            if isinstance(node, _Dummy):
                cursor += opts.node_sep
                continue
            in_rank_centre = cursor + extent / 2
            cursor += extent + opts.node_sep
            if vertical:
                centres[node] = (in_rank_centre, rank_centre)  # type: ignore[index]
            else:
                centres[node] = (rank_centre, in_rank_centre)  # type: ignore[index]
    return centres
