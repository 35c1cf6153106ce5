"""Closed-world edge filtering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from ceedraft.graph.detectors import find_invalid_edge_patterns
from ceedraft.repair.synthetic import Repair

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph

EdgeFilterMode = Literal["strict", "lenient"]

PATTERN_FLAG = "pattern_violation"


@dataclass
class EdgeFilterResult:
    """Edges removed (strict) or flagged in place (lenient)."""

    mode: EdgeFilterMode
    stripped: list[str] = field(default_factory=list)
    flagged: list[str] = field(default_factory=list)
    repairs: list[Repair] = field(default_factory=list)


def filter_edges(graph: Graph, mode: EdgeFilterMode = "strict") -> EdgeFilterResult:
    """Strip or flag edges whose kind pair is not allow-listed.

    In lenient mode offending edges stay and gain ``pattern_violation=True``;
    an edge already flagged is not flagged again.
    """
    result = EdgeFilterResult(mode=mode)
    invalid = find_invalid_edge_patterns(graph)
    if not invalid:
        return result

    kinds = graph.kind_map()
    if mode == "strict":
        invalid_ids = {id(edge) for edge in invalid}
        graph.edges = [e for e in graph.edges if id(e) not in invalid_ids]
        for edge in invalid:
            key = edge.id or edge.pair_key
            result.stripped.append(key)
            result.repairs.append(
                Repair(
                    "INVALID_EDGE_TYPE",
                    f"edges[{key}]",
                    f"stripped {kinds[edge.from_]} -> {kinds[edge.to]} edge",
                )
            )
        return result

    for edge in invalid:
        if getattr(edge, PATTERN_FLAG, False):
            continue
        setattr(edge, PATTERN_FLAG, True)
        key = edge.id or edge.pair_key
        result.flagged.append(key)
        result.repairs.append(
            Repair(
                "INVALID_EDGE_TYPE",
                f"edges[{key}]",
                f"flagged {kinds[edge.from_]} -> {kinds[edge.to]} edge",
            )
        )
    return result
