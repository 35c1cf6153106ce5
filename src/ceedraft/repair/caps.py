"""Node and edge cap enforcement."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ceedraft.graph.detectors import edge_kind_pair
from ceedraft.graph.identity import strip_dangling_edges
from ceedraft.models.graph import PROTECTED_KINDS, STRUCTURAL_PATTERNS
from ceedraft.repair.synthetic import Repair

if TYPE_CHECKING:
    from ceedraft.models.graph import Edge, Graph


@dataclass
class CapResult:
    """What cap enforcement removed."""

    nodes_trimmed: list[str] = field(default_factory=list)
    edges_trimmed: list[str] = field(default_factory=list)
    repairs: list[Repair] = field(default_factory=list)


def enforce_caps(graph: Graph, max_nodes: int, max_edges: int) -> CapResult:
    """Trim excess nodes and edges, in place.

    Nodes of a protected kind are never removed, so the node count may stay
    above ``max_nodes``. Among trimmable nodes, the least connected go
    first (ties broken by ID, highest first). Edges attached to trimmed
    nodes are dropped before the edge cap is applied; structural edges are
    trimmed last, lowest ``belief_exists`` first.
    """
    result = CapResult()

    excess_nodes = len(graph.nodes) - max_nodes
    if excess_nodes > 0:
        degree: Counter[str] = Counter()
        for edge in graph.edges:
            degree[edge.from_] += 1
            degree[edge.to] += 1
        trimmable = [n for n in graph.nodes if n.kind not in PROTECTED_KINDS]
        trimmable.sort(key=lambda n: n.id, reverse=True)
        trimmable.sort(key=lambda n: degree[n.id])
        doomed = {n.id for n in trimmable[:excess_nodes]}
        if doomed:
            graph.nodes = [n for n in graph.nodes if n.id not in doomed]
            for node_id in sorted(doomed):
                result.nodes_trimmed.append(node_id)
                result.repairs.append(
                    Repair("NODE_LIMIT_EXCEEDED", f"nodes[{node_id}]", "trimmed over node cap")
                )
            for edge in strip_dangling_edges(graph):
                result.repairs.append(
                    Repair(
                        "DANGLING_EDGE_REMOVED",
                        f"edges[{edge.id or edge.pair_key}]",
                        "removed with trimmed node",
                    )
                )

    excess_edges = len(graph.edges) - max_edges
    if excess_edges > 0:
        kinds = graph.kind_map()

        def trim_key(edge: Edge) -> tuple[bool, float]:
            structural = edge_kind_pair(edge, kinds) in STRUCTURAL_PATTERNS
            belief = edge.belief_exists if edge.belief_exists is not None else 0.0
            return structural, belief

        ranked = sorted(graph.edges, key=lambda e: e.id or e.pair_key, reverse=True)
        ranked.sort(key=trim_key)
        doomed_edges = {id(e) for e in ranked[:excess_edges]}
        for edge in ranked[:excess_edges]:
            key = edge.id or edge.pair_key
            result.edges_trimmed.append(key)
            result.repairs.append(
                Repair("EDGE_LIMIT_EXCEEDED", f"edges[{key}]", "trimmed over edge cap")
            )
        graph.edges = [e for e in graph.edges if id(e) not in doomed_edges]

    return result
