"""Orphan wiring and factor->goal splitting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ceedraft.graph.detectors import (
    build_adjacency,
    find_orphan_factors,
    find_orphan_outcomes,
    reachable_from,
)
from ceedraft.models.graph import Node
from ceedraft.repair.synthetic import Repair, bridge_edge, causal_edge, structural_edge

if TYPE_CHECKING:
    from ceedraft.models.graph import Edge, Graph

SPLIT_MEAN = 0.5
SPLIT_STD = 0.15
SPLIT_EXISTS = 0.9

# Plausibility bounds for factor -> factor wiring.
DEFAULT_PLAUSIBILITY = 0.7
MIN_PLAUSIBILITY = 0.3
MAX_PLAUSIBILITY = 0.9
CAUSAL_WIRING_STD = 0.15


def primary_goal_id(graph: Graph) -> str | None:
    """First goal in node order, or None."""
    goals = graph.nodes_of_kind("goal")
    return goals[0].id if goals else None


def split_factor_goal_edges(graph: Graph) -> list[Repair]:
    """Route factor -> goal edges through a synthetic outcome.

    The factor keeps its original strength on the factor -> outcome leg;
    the outcome -> goal leg gets moderate synthetic values.
    """
    kinds = graph.kind_map()
    nodes = graph.node_map()
    repairs: list[Repair] = []
    for edge in list(graph.edges):
        if kinds.get(edge.from_) != "factor" or kinds.get(edge.to) != "goal":
            continue
        goal_id = edge.to
        outcome_id = f"out_{edge.from_}_impact"
        if outcome_id not in nodes:
            factor = nodes[edge.from_]
            outcome = Node(id=outcome_id, kind="outcome", label=f"{factor.label or factor.id} impact")
            graph.nodes.append(outcome)
            nodes[outcome_id] = outcome
            kinds[outcome_id] = "outcome"
        edge.to = outcome_id
        edge.id = None
        if not any(e.from_ == outcome_id and e.to == goal_id for e in graph.edges):
            graph.edges.append(
                causal_edge(
                    outcome_id,
                    goal_id,
                    mean=SPLIT_MEAN,
                    std=SPLIT_STD,
                    belief=SPLIT_EXISTS,
                    provenance="factor_goal_split",
                )
            )
        repairs.append(
            Repair(
                "FACTOR_GOAL_EDGE_SPLIT",
                f"edges[{edge.from_}::{goal_id}]",
                f"routed through {outcome_id}",
            )
        )
    return repairs


def wire_orphan_outcomes(graph: Graph) -> list[Repair]:
    """Wire outcome (+) and risk (-) nodes lacking a goal edge to the goal."""
    goal_id = primary_goal_id(graph)
    if goal_id is None:
        return []
    kinds = graph.kind_map()
    repairs: list[Repair] = []
    for node_id in find_orphan_outcomes(graph):
        graph.edges.append(bridge_edge(node_id, kinds[node_id], goal_id, "orphan_wiring"))
        repairs.append(
            Repair("ORPHAN_OUTCOME_WIRED", f"nodes[{node_id}]", f"wired {node_id} -> {goal_id}")
        )
    return repairs


def _plausibility(edges: list[Edge]) -> float:
    beliefs = [e.belief_exists for e in edges if e.belief_exists is not None]
    value = max(beliefs) if beliefs else DEFAULT_PLAUSIBILITY
    return round(min(MAX_PLAUSIBILITY, max(MIN_PLAUSIBILITY, value)), 2)


def wire_orphan_factors(graph: Graph) -> list[Repair]:
    """Wire factors lacking an inbound causal edge from upstream.

    Preference order for the upstream end:
    1. Options whose interventions target the factor (structural edge).
    2. An anchored sibling factor that shares a downstream target (causal
       edge scaled by the sibling's belief in that target). A sibling is
       anchored when it has an inbound option/factor edge, and is skipped
       if it is reachable from the orphan, which would close a cycle.

    Factors with neither stay unwired; unreachable-factor handling deals
    with them.
    """
    orphans = find_orphan_factors(graph)
    if not orphans:
        return []

    kinds = graph.kind_map()
    repairs: list[Repair] = []
    for factor_id in orphans:
        sources = sorted(
            n.id for n in graph.nodes if n.kind == "option" and factor_id in n.interventions
        )
        if sources:
            for option_id in sources:
                graph.edges.append(structural_edge(option_id, factor_id, "orphan_wiring"))
                repairs.append(
                    Repair(
                        "ORPHAN_FACTOR_WIRED",
                        f"nodes[{factor_id}]",
                        f"wired {option_id} -> {factor_id} from interventions",
                    )
                )
            continue

        anchored = {e.to for e in graph.edges if kinds.get(e.from_) in ("option", "factor")}
        downstream = {e.to: e for e in graph.edges if e.from_ == factor_id}
        blocked = reachable_from([factor_id], build_adjacency(graph))
        candidates: list[tuple[str, list[Edge]]] = []
        for sibling in sorted(anchored):
            if kinds.get(sibling) != "factor" or sibling in blocked:
                continue
            shared = [e for e in graph.edges if e.from_ == sibling and e.to in downstream]
            if shared:
                candidates.append((sibling, shared))
        if not candidates:
            continue

        sibling, shared = candidates[0]
        plausibility = _plausibility(shared)
        graph.edges.append(
            causal_edge(
                sibling,
                factor_id,
                mean=round(0.5 * plausibility, 2),
                std=CAUSAL_WIRING_STD,
                belief=plausibility,
                provenance="orphan_wiring",
            )
        )
        repairs.append(
            Repair(
                "ORPHAN_FACTOR_WIRED",
                f"nodes[{factor_id}]",
                f"wired {sibling} -> {factor_id} (plausibility {plausibility})",
            )
        )
    return repairs
