"""Tests for orphan wiring and factor->goal splitting."""

from __future__ import annotations

from typing import Any

from ceedraft.models.graph import Graph
from ceedraft.repair.wiring import (
    SPLIT_MEAN,
    split_factor_goal_edges,
    wire_orphan_factors,
    wire_orphan_outcomes,
)


def _pairs(graph: Graph) -> set[tuple[str, str]]:
    return {(e.from_, e.to) for e in graph.edges}


class TestSplitFactorGoalEdges:
    """Tests for split_factor_goal_edges."""

    def test_routes_through_synthetic_outcome(self, valid_graph_payload: dict[str, Any]) -> None:
        valid_graph_payload["edges"].append(
            {"from": "fac_demand", "to": "goal_profit", "strength_mean": 0.35}
        )
        graph = Graph.model_validate(valid_graph_payload)
        repairs = split_factor_goal_edges(graph)

        assert [r.code for r in repairs] == ["FACTOR_GOAL_EDGE_SPLIT"]
        assert ("fac_demand", "goal_profit") not in _pairs(graph)
        outcome = graph.node_map()["out_fac_demand_impact"]
        assert outcome.kind == "outcome"
        rerouted = next(
            e for e in graph.edges if e.from_ == "fac_demand" and e.to == outcome.id
        )
        assert rerouted.strength_mean == 0.35
        bridge = next(e for e in graph.edges if e.from_ == outcome.id)
        assert bridge.to == "goal_profit"
        assert bridge.strength_mean == SPLIT_MEAN
        assert bridge.is_synthetic

    def test_no_factor_goal_edges(self, valid_graph: Graph) -> None:
        assert split_factor_goal_edges(valid_graph) == []


class TestWireOrphanOutcomes:
    """Tests for wire_orphan_outcomes."""

    def test_outcome_positive_risk_negative(self, valid_graph_payload: dict[str, Any]) -> None:
        valid_graph_payload["edges"] = [
            e for e in valid_graph_payload["edges"] if e["to"] != "goal_profit"
        ]
        graph = Graph.model_validate(valid_graph_payload)
        repairs = wire_orphan_outcomes(graph)

        assert [r.code for r in repairs] == ["ORPHAN_OUTCOME_WIRED", "ORPHAN_OUTCOME_WIRED"]
        by_source = {e.from_: e for e in graph.edges if e.to == "goal_profit"}
        assert by_source["out_revenue"].strength_mean > 0
        assert by_source["risk_churn"].strength_mean < 0
        assert by_source["risk_churn"].effect_direction == "negative"

    def test_no_goal_no_wiring(self, valid_graph_payload: dict[str, Any]) -> None:
        valid_graph_payload["nodes"] = [
            n for n in valid_graph_payload["nodes"] if n["kind"] != "goal"
        ]
        graph = Graph.model_validate(valid_graph_payload)
        assert wire_orphan_outcomes(graph) == []


class TestWireOrphanFactors:
    """Tests for wire_orphan_factors."""

    def test_wires_from_intervening_option(self, valid_graph_payload: dict[str, Any]) -> None:
        valid_graph_payload["edges"] = [
            e for e in valid_graph_payload["edges"] if e["to"] != "fac_price"
        ]
        graph = Graph.model_validate(valid_graph_payload)
        repairs = wire_orphan_factors(graph)

        assert len(repairs) == 2
        assert {("opt_hold", "fac_price"), ("opt_raise", "fac_price")} <= _pairs(graph)
        wired = [e for e in graph.edges if e.to == "fac_price"]
        assert all(e.provenance == "orphan_wiring" for e in wired)
        assert all(e.strength_mean == 1.0 for e in wired)

    def test_wires_from_anchored_sibling(self, valid_graph_payload: dict[str, Any]) -> None:
        """A factor sharing a downstream target with an anchored sibling gets a causal edge."""
        valid_graph_payload["nodes"].append({"id": "fac_season", "kind": "factor"})
        valid_graph_payload["edges"].append(
            {"from": "fac_season", "to": "out_revenue", "strength_mean": 0.2}
        )
        graph = Graph.model_validate(valid_graph_payload)
        repairs = wire_orphan_factors(graph)

        assert [r.code for r in repairs] == ["ORPHAN_FACTOR_WIRED"]
        edge = next(e for e in graph.edges if e.to == "fac_season")
        assert edge.from_ in ("fac_demand", "fac_price")
        assert 0.3 <= edge.belief_exists <= 0.9
        assert edge.strength_mean == round(0.5 * edge.belief_exists, 2)

    def test_unanchored_factor_left_alone(self, valid_graph_payload: dict[str, Any]) -> None:
        valid_graph_payload["nodes"].append({"id": "fac_weather", "kind": "factor"})
        graph = Graph.model_validate(valid_graph_payload)
        assert wire_orphan_factors(graph) == []
