"""Tests for the deterministic repair engine."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from ceedraft.graph.validator import GraphValidator
from ceedraft.models.graph import Graph
from ceedraft.pipeline.config import RepairConfig
from ceedraft.repair.buckets import Bucket
from ceedraft.repair.edge_filter import PATTERN_FLAG
from ceedraft.repair.sweep import DeterministicRepairEngine, SweepState


@pytest.fixture
def engine() -> DeterministicRepairEngine:
    return DeterministicRepairEngine(GraphValidator())


def _without_goal(payload: dict[str, Any]) -> dict[str, Any]:
    payload["nodes"] = [n for n in payload["nodes"] if n["kind"] != "goal"]
    payload["edges"] = [e for e in payload["edges"] if e["to"] != "goal_profit"]
    return payload


class TestCleanGraph:
    """A violation-free graph only gets identity normalisation."""

    def test_stable_without_passes(
        self, engine: DeterministicRepairEngine, valid_graph: Graph
    ) -> None:
        result = engine.run(valid_graph)
        assert result.state == SweepState.STABLE
        assert result.passes == 0
        assert result.violations_before.total == 0
        assert set(result.repair_codes) == {"EDGE_ID_ASSIGNED"}
        assert all(e.id for e in valid_graph.edges)

    def test_edges_sorted_by_id(
        self, engine: DeterministicRepairEngine, valid_graph: Graph
    ) -> None:
        engine.run(valid_graph)
        ids = [e.id or "" for e in valid_graph.edges]
        assert ids == sorted(ids)

    def test_idempotent(self, engine: DeterministicRepairEngine, valid_graph: Graph) -> None:
        """Re-running on repaired output changes nothing."""
        engine.run(valid_graph)
        repaired = valid_graph.content_hash()
        second = engine.run(valid_graph)
        assert second.repairs == []
        assert valid_graph.content_hash() == repaired


class TestStatusQuo:
    """Status-quo scenarios end to end through the engine."""

    def test_wired(
        self, engine: DeterministicRepairEngine, status_quo_payload: dict[str, Any]
    ) -> None:
        graph = Graph.model_validate(status_quo_payload)
        result = engine.run(graph)

        assert "STATUS_QUO_WIRED" in result.repair_codes
        assert result.status_quo.fixed
        assert not result.llm_repair_needed
        assert result.state == SweepState.STABLE
        assert any(e.from_ == "opt_status_quo" and e.to == "fac_price" for e in graph.edges)
        assert graph.node_map()["opt_status_quo"].interventions == {"fac_price": 10.0}

    def test_droppable(
        self, engine: DeterministicRepairEngine, droppable_status_quo_payload: dict[str, Any]
    ) -> None:
        graph = Graph.model_validate(droppable_status_quo_payload)
        result = engine.run(graph)

        assert result.status_quo.marked_droppable
        assert not result.status_quo.fixed
        assert result.llm_repair_needed
        assert result.violations_after.codes(Bucket.C) == ["NO_PATH_TO_GOAL"]
        assert "opt_status_quo" in graph.node_map()


class TestRepairs:
    """Bucket B violations are fixed in place."""

    def test_infers_missing_goal(
        self, engine: DeterministicRepairEngine, valid_graph_payload: dict[str, Any]
    ) -> None:
        graph = Graph.model_validate(_without_goal(valid_graph_payload))
        result = engine.run(graph, brief="Our goal is to maximise yearly profit.")

        assert result.state == SweepState.STABLE
        assert result.goal_inference.added
        assert result.goal_inference.source == "brief"
        assert result.graph_delta["nodes_added"] == ["goal_inferred"]
        assert "MISSING_GOAL" in result.violations_before.codes(Bucket.B)

    def test_explicit_goal_preferred(
        self, engine: DeterministicRepairEngine, valid_graph_payload: dict[str, Any]
    ) -> None:
        graph = Graph.model_validate(_without_goal(valid_graph_payload))
        result = engine.run(graph, brief="Our goal is to grow.", explicit_goal="Stay solvent")
        assert result.goal_inference.goal_id == "goal_explicit"
        assert graph.node_map()["goal_explicit"].label == "Stay solvent"

    def test_splits_factor_goal_edge(
        self, engine: DeterministicRepairEngine, valid_graph_payload: dict[str, Any]
    ) -> None:
        valid_graph_payload["edges"].append(
            {
                "from": "fac_demand",
                "to": "goal_profit",
                "strength_mean": 0.35,
                "effect_direction": "positive",
            }
        )
        graph = Graph.model_validate(valid_graph_payload)
        result = engine.run(graph)

        assert result.state == SweepState.STABLE
        assert result.factor_goal_splits == 1
        assert result.graph_delta["nodes_added"] == ["out_fac_demand_impact"]

    def test_fixes_numeric_problems(
        self, engine: DeterministicRepairEngine, valid_graph_payload: dict[str, Any]
    ) -> None:
        edge = next(e for e in valid_graph_payload["edges"] if e["from"] == "fac_demand")
        edge["belief_exists"] = float("nan")
        structural = valid_graph_payload["edges"][0]
        structural["strength_mean"] = 0.3
        graph = Graph.model_validate(valid_graph_payload)
        result = engine.run(graph)

        assert result.state == SweepState.STABLE
        assert "NAN_VALUE" in result.repair_codes
        assert "STRUCTURAL_EDGE_CANONICALISED" in result.repair_codes
        assert result.violations_after.total == 0

    def test_breaks_cycle(
        self, engine: DeterministicRepairEngine, valid_graph_payload: dict[str, Any]
    ) -> None:
        valid_graph_payload["edges"].append(
            {"from": "fac_demand", "to": "fac_price", "strength_mean": 0.2}
        )
        graph = Graph.model_validate(valid_graph_payload)
        result = engine.run(graph)
        assert "CYCLE_BROKEN" in result.repair_codes
        assert "CYCLE_DETECTED" not in result.violations_after.codes()


class TestEdgeFilterModes:
    """Strict strips invalid patterns, lenient flags them."""

    @pytest.fixture
    def shortcut_payload(self, valid_graph_payload: dict[str, Any]) -> dict[str, Any]:
        valid_graph_payload["edges"].append(
            {"from": "opt_raise", "to": "out_revenue", "strength_mean": 0.3}
        )
        return valid_graph_payload

    def test_strict(self, shortcut_payload: dict[str, Any]) -> None:
        graph = Graph.model_validate(shortcut_payload)
        result = DeterministicRepairEngine(GraphValidator()).run(graph)
        assert result.edge_filter.stripped == ["opt_raise::out_revenue"]
        assert result.violations_after.total == 0

    def test_lenient(self, shortcut_payload: dict[str, Any]) -> None:
        graph = Graph.model_validate(shortcut_payload)
        engine = DeterministicRepairEngine.from_config(
            GraphValidator(), RepairConfig(edge_filter_mode="lenient")
        )
        result = engine.run(graph)

        assert result.edge_filter.flagged == ["opt_raise::out_revenue"]
        assert result.violations_after.codes(Bucket.B) == ["INVALID_EDGE_TYPE"]
        assert result.state == SweepState.STABLE
        edge = next(e for e in graph.edges if e.from_ == "opt_raise" and e.to == "out_revenue")
        assert getattr(edge, PATTERN_FLAG) is True


class TestInvariants:
    """Properties that hold for any input."""

    def test_deterministic(
        self, engine: DeterministicRepairEngine, valid_graph_payload: dict[str, Any]
    ) -> None:
        payload = _without_goal(valid_graph_payload)
        payload["edges"].append({"from": "fac_demand", "to": "fac_price", "strength_mean": 0.2})
        first = Graph.model_validate(copy.deepcopy(payload))
        second = Graph.model_validate(copy.deepcopy(payload))
        engine.run(first, brief="We need to lift profit.")
        engine.run(second, brief="We need to lift profit.")
        assert first.content_hash() == second.content_hash()

    def test_edge_cap_holds(self, valid_graph_payload: dict[str, Any]) -> None:
        engine = DeterministicRepairEngine(GraphValidator(max_edges=6), max_edges=6)
        graph = Graph.model_validate(valid_graph_payload)
        engine.run(graph)
        assert len(graph.edges) <= 6

    def test_pass_ceiling(self, droppable_status_quo_payload: dict[str, Any]) -> None:
        engine = DeterministicRepairEngine(GraphValidator(), max_passes=1)
        result = engine.run(Graph.model_validate(droppable_status_quo_payload))
        assert result.passes == 1

    def test_trace_shape(
        self, engine: DeterministicRepairEngine, status_quo_payload: dict[str, Any]
    ) -> None:
        trace = engine.run(Graph.model_validate(status_quo_payload)).to_trace()
        assert trace["sweep_ran"] is True
        assert trace["state"] == "stable"
        assert trace["status_quo"]["wired_options"] == ["opt_status_quo"]
        assert trace["bucket_summary"] == {"a": 0, "b": 0, "c": 1}
        assert trace["remaining_bucket_c"] == []
