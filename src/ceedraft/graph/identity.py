"""Edge identity and ordering helpers.

Edge IDs take the form ``from::to::index`` where ``index`` disambiguates
parallel edges between the same pair. IDs already present on an edge are
kept unless they collide with an earlier edge.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ceedraft.models.graph import Edge, Graph


def edge_id_for(from_id: str, to_id: str, index: int) -> str:
    """Build the canonical ID for the ``index``-th edge of a pair."""
    return f"{from_id}::{to_id}::{index}"


def assign_edge_ids(graph: Graph) -> list[str]:
    """Give every edge a unique ID, in place.

    Edges without an ID, or whose ID duplicates an earlier edge, receive
    the lowest free ``from::to::index`` for their pair.

    Returns:
        IDs that were newly assigned, in edge order.
    """
    taken: set[str] = set()
    needs_id: list[Edge] = []
    for edge in graph.edges:
        if edge.id and edge.id not in taken:
            taken.add(edge.id)
        else:
            needs_id.append(edge)

    next_index: dict[str, int] = defaultdict(int)
    assigned: list[str] = []
    for edge in needs_id:
        pair = edge.pair_key
        index = next_index[pair]
        candidate = edge_id_for(edge.from_, edge.to, index)
        while candidate in taken:
            index += 1
            candidate = edge_id_for(edge.from_, edge.to, index)
        next_index[pair] = index + 1
        edge.id = candidate
        taken.add(candidate)
        assigned.append(candidate)
    return assigned


def sort_edges(graph: Graph) -> None:
    """Sort edges lexicographically by ID, in place."""
    graph.edges.sort(key=lambda e: (e.id or "", e.from_, e.to))


def strip_dangling_edges(graph: Graph) -> list[Edge]:
    """Remove edges whose endpoints do not exist, in place.

    Returns:
        The removed edges.
    """
    node_ids = {node.id for node in graph.nodes}
    kept: list[Edge] = []
    removed: list[Edge] = []
    for edge in graph.edges:
        if edge.from_ in node_ids and edge.to in node_ids:
            kept.append(edge)
        else:
            removed.append(edge)
    if removed:
        graph.edges = kept
    return removed


def calculate_meta(graph: Graph) -> dict[str, Any]:
    """Summarise graph shape: roots, leaves and per-kind counts."""
    has_incoming = {edge.to for edge in graph.edges}
    has_outgoing = {edge.from_ for edge in graph.edges}
    kinds: dict[str, int] = defaultdict(int)
    for node in graph.nodes:
        kinds[node.kind] += 1
    return {
        "node_count": len(graph.nodes),
        "edge_count": len(graph.edges),
        "roots": sorted(n.id for n in graph.nodes if n.id not in has_incoming),
        "leaves": sorted(n.id for n in graph.nodes if n.id not in has_outgoing),
        "kinds": dict(sorted(kinds.items())),
    }
