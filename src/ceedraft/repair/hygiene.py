"""Edge-level hygiene fixes: numerics, forbidden topology and cycles."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from ceedraft.graph.detectors import detect_cycles, edge_kind_pair, find_dangling_edges
from ceedraft.graph.identity import strip_dangling_edges
from ceedraft.graph.validator import has_sign_mismatch, is_canonical_structural
from ceedraft.models.graph import STRUCTURAL_PATTERNS
from ceedraft.repair.synthetic import (
    STRUCTURAL_EXISTS,
    STRUCTURAL_MEAN,
    STRUCTURAL_STD,
    Repair,
)

if TYPE_CHECKING:
    from ceedraft.models.graph import Edge, Graph

# Replacement values for non-finite edge fields.
DEFAULT_MEAN = 0.5
DEFAULT_STD = 0.1
DEFAULT_EXISTS = 0.8


def _path(edge: Edge) -> str:
    return f"edges[{edge.id or edge.pair_key}]"


def strip_dangling(graph: Graph) -> list[Repair]:
    """Remove edges pointing at missing nodes."""
    if not find_dangling_edges(graph):
        return []
    return [
        Repair("DANGLING_EDGE_REMOVED", _path(edge), f"removed edge {edge.pair_key}")
        for edge in strip_dangling_edges(graph)
    ]


def fix_numeric_fields(graph: Graph) -> list[Repair]:
    """Reset non-finite values, clamp beliefs and align signs with direction."""
    repairs: list[Repair] = []
    for edge in graph.edges:
        if edge.strength_mean is not None and not math.isfinite(edge.strength_mean):
            edge.strength_mean = DEFAULT_MEAN
            repairs.append(Repair("NAN_VALUE", _path(edge), f"strength_mean -> {DEFAULT_MEAN}"))
        if edge.strength_std is not None and not math.isfinite(edge.strength_std):
            edge.strength_std = DEFAULT_STD
            repairs.append(Repair("NAN_VALUE", _path(edge), f"strength_std -> {DEFAULT_STD}"))
        if edge.belief_exists is not None and not math.isfinite(edge.belief_exists):
            edge.belief_exists = DEFAULT_EXISTS
            repairs.append(Repair("NAN_VALUE", _path(edge), f"belief_exists -> {DEFAULT_EXISTS}"))
        elif edge.belief_exists is not None and not 0.0 <= edge.belief_exists <= 1.0:
            clamped = min(1.0, max(0.0, edge.belief_exists))
            repairs.append(
                Repair(
                    "BELIEF_OUT_OF_RANGE",
                    _path(edge),
                    f"belief_exists {edge.belief_exists} -> {clamped}",
                )
            )
            edge.belief_exists = clamped
        if has_sign_mismatch(edge) and edge.strength_mean is not None:
            edge.strength_mean = -edge.strength_mean
            repairs.append(
                Repair(
                    "SIGN_MISMATCH",
                    _path(edge),
                    f"strength_mean flipped to match {edge.effect_direction}",
                )
            )
    return repairs


def canonicalise_structural_edges(graph: Graph) -> list[Repair]:
    """Force decision->option and option->factor edges to 1 / 0.01 / 1."""
    kinds = graph.kind_map()
    repairs: list[Repair] = []
    for edge in graph.edges:
        if edge_kind_pair(edge, kinds) not in STRUCTURAL_PATTERNS:
            continue
        if is_canonical_structural(edge):
            continue
        edge.strength_mean = STRUCTURAL_MEAN
        edge.strength_std = STRUCTURAL_STD
        edge.belief_exists = STRUCTURAL_EXISTS
        edge.effect_direction = "positive"
        repairs.append(
            Repair("STRUCTURAL_EDGE_CANONICALISED", _path(edge), "set to 1 / 0.01 / 1")
        )
    return repairs


def remove_forbidden_topology(graph: Graph) -> list[Repair]:
    """Drop edges leaving a goal or entering a decision."""
    kinds = graph.kind_map()
    kept: list[Edge] = []
    repairs: list[Repair] = []
    for edge in graph.edges:
        if kinds.get(edge.from_) == "goal":
            repairs.append(Repair("GOAL_HAS_OUTGOING", _path(edge), "removed goal outgoing edge"))
        elif kinds.get(edge.to) == "decision":
            repairs.append(
                Repair("DECISION_HAS_INCOMING", _path(edge), "removed decision incoming edge")
            )
        else:
            kept.append(edge)
    if repairs:
        graph.edges = kept
    return repairs


def break_cycles(graph: Graph) -> list[Repair]:
    """Remove the closing edge of every detected cycle.

    Repeats detection until the graph is acyclic; each round removes at
    least one edge so the loop terminates.
    """
    repairs: list[Repair] = []
    cycles = detect_cycles(graph)
    while cycles:
        closing = {(cycle[-2], cycle[-1]) for cycle in cycles}
        kept: list[Edge] = []
        for edge in graph.edges:
            if (edge.from_, edge.to) in closing:
                repairs.append(
                    Repair("CYCLE_BROKEN", _path(edge), f"removed cycle edge {edge.pair_key}")
                )
            else:
                kept.append(edge)
        graph.edges = kept
        cycles = detect_cycles(graph)
    return repairs
