"""Tests for structural detectors."""

from __future__ import annotations

from typing import Any

from ceedraft.graph.detectors import (
    check_connected_minimum_structure,
    detect_cycles,
    detect_uniform_direction,
    detect_uniform_strengths,
    effective_direction,
    find_dangling_edges,
    find_disconnected_options,
    find_invalid_edge_patterns,
    find_missing_kinds,
    find_orphan_factors,
    find_orphan_outcomes,
    find_status_quo_options,
    find_unreachable_factors,
    is_status_quo_label,
)
from ceedraft.models.graph import Edge, Graph


def _graph(nodes: list[tuple[str, str]], edges: list[tuple[str, str]], **extra: Any) -> Graph:
    return Graph.model_validate(
        {
            "nodes": [{"id": i, "kind": k} for i, k in nodes],
            "edges": [{"from": a, "to": b, **extra} for a, b in edges],
        }
    )


class TestCycles:
    """Tests for cycle detection."""

    def test_acyclic(self, valid_graph: Graph) -> None:
        assert detect_cycles(valid_graph) == []

    def test_simple_cycle(self) -> None:
        graph = _graph(
            [("fac_a", "factor"), ("fac_b", "factor")],
            [("fac_a", "fac_b"), ("fac_b", "fac_a")],
        )
        assert detect_cycles(graph) == [["fac_a", "fac_b", "fac_a"]]

    def test_self_loop(self) -> None:
        graph = _graph([("fac_a", "factor")], [("fac_a", "fac_a")])
        assert detect_cycles(graph) == [["fac_a", "fac_a"]]

    def test_dangling_edges_ignored(self) -> None:
        graph = _graph([("fac_a", "factor")], [("fac_a", "ghost"), ("ghost", "fac_a")])
        assert detect_cycles(graph) == []


class TestEdgeDetectors:
    """Tests for edge-level detectors."""

    def test_dangling(self) -> None:
        graph = _graph([("fac_a", "factor")], [("fac_a", "ghost")])
        assert [e.to for e in find_dangling_edges(graph)] == ["ghost"]

    def test_invalid_patterns(self) -> None:
        graph = _graph(
            [("opt_a", "option"), ("out_x", "outcome"), ("fac_a", "factor")],
            [("opt_a", "out_x"), ("opt_a", "fac_a")],
        )
        invalid = find_invalid_edge_patterns(graph)
        assert [(e.from_, e.to) for e in invalid] == [("opt_a", "out_x")]

    def test_effective_direction_falls_back_to_sign(self) -> None:
        assert effective_direction(Edge(from_="a", to="b", strength_mean=-0.2)) == "negative"
        assert effective_direction(Edge(from_="a", to="b", strength_mean=0.0)) is None
        declared = Edge(from_="a", to="b", strength_mean=-0.2, effect_direction="positive")
        assert effective_direction(declared) == "positive"


class TestNodeDetectors:
    """Tests for node-level detectors."""

    def test_valid_graph_has_no_findings(self, valid_graph: Graph) -> None:
        assert find_orphan_outcomes(valid_graph) == []
        assert find_orphan_factors(valid_graph) == []
        assert find_unreachable_factors(valid_graph) == []
        assert find_disconnected_options(valid_graph) == []
        assert find_status_quo_options(valid_graph) == []
        assert find_missing_kinds(valid_graph) == []

    def test_missing_kinds(self) -> None:
        graph = _graph([("opt_a", "option")], [])
        assert find_missing_kinds(graph) == ["goal", "decision"]

    def test_orphan_outcome(self) -> None:
        graph = _graph([("out_x", "outcome"), ("goal_g", "goal")], [])
        assert find_orphan_outcomes(graph) == ["out_x"]

    def test_orphan_factor_skips_exogenous(self) -> None:
        graph = Graph.model_validate(
            {
                "nodes": [
                    {"id": "fac_a", "kind": "factor"},
                    {"id": "fac_ext", "kind": "factor", "category": "external"},
                    {"id": "fac_obs", "kind": "factor", "category": "observable"},
                ],
                "edges": [],
            }
        )
        assert find_orphan_factors(graph) == ["fac_a"]

    def test_status_quo_options(self, status_quo_payload: dict[str, Any]) -> None:
        graph = Graph.model_validate(status_quo_payload)
        assert find_status_quo_options(graph) == ["opt_status_quo"]
        assert find_disconnected_options(graph) == ["opt_status_quo"]

    def test_status_quo_labels(self) -> None:
        assert is_status_quo_label("Keep the status quo")
        assert is_status_quo_label("Do nothing")
        assert is_status_quo_label("Stay with current supplier")
        assert not is_status_quo_label("Raise prices")


class TestDegeneracy:
    """Tests for uniform strength and direction detection."""

    def test_uniform_strengths(self) -> None:
        graph = _graph(
            [("fac_a", "factor"), ("fac_b", "factor"), ("out_x", "outcome"), ("goal_g", "goal")],
            [("fac_a", "fac_b"), ("fac_b", "out_x"), ("out_x", "goal_g")],
            strength_mean=0.5,
        )
        report = detect_uniform_strengths(graph)
        assert report.detected
        assert report.value == 0.5
        assert report.edge_count == 3

    def test_structural_edges_excluded(self) -> None:
        graph = _graph(
            [("dec_d", "decision"), ("opt_a", "option"), ("opt_b", "option"), ("fac_a", "factor")],
            [("dec_d", "opt_a"), ("dec_d", "opt_b"), ("opt_a", "fac_a")],
            strength_mean=1.0,
        )
        assert not detect_uniform_strengths(graph).detected

    def test_mixed_graph_not_degenerate(self, valid_graph: Graph) -> None:
        assert not detect_uniform_strengths(valid_graph).detected
        assert not detect_uniform_direction(valid_graph).detected

    def test_uniform_direction(self) -> None:
        graph = _graph(
            [
                ("fac_a", "factor"),
                ("fac_b", "factor"),
                ("fac_c", "factor"),
                ("out_x", "outcome"),
                ("goal_g", "goal"),
            ],
            [("fac_a", "fac_b"), ("fac_b", "fac_c"), ("fac_c", "out_x"), ("out_x", "goal_g")],
            effect_direction="positive",
        )
        report = detect_uniform_direction(graph)
        assert report.detected
        assert report.direction == "positive"


class TestConnectivity:
    """Tests for the connected minimum structure check."""

    def test_valid_graph_passes(self, valid_graph: Graph) -> None:
        diagnostic = check_connected_minimum_structure(valid_graph)
        assert diagnostic.passed
        assert diagnostic.reachable_goals == ["goal_profit"]
        assert diagnostic.reachable_options == ["opt_hold", "opt_raise"]

    def test_direction_is_ignored(self) -> None:
        """Undirected reachability: decision and goal share a component."""
        graph = _graph(
            [("dec_d", "decision"), ("opt_a", "option"), ("goal_g", "goal")],
            [("dec_d", "opt_a"), ("goal_g", "opt_a")],
        )
        assert check_connected_minimum_structure(graph).passed

    def test_disconnected_goal_fails(self) -> None:
        graph = _graph(
            [("dec_d", "decision"), ("opt_a", "option"), ("goal_g", "goal")],
            [("dec_d", "opt_a")],
        )
        diagnostic = check_connected_minimum_structure(graph)
        assert not diagnostic.passed
        assert diagnostic.reachable_goals == []
        assert diagnostic.missing_kinds == []

    def test_no_decision_fails(self) -> None:
        graph = _graph([("opt_a", "option"), ("goal_g", "goal")], [("opt_a", "goal_g")])
        diagnostic = check_connected_minimum_structure(graph)
        assert not diagnostic.passed
        assert diagnostic.missing_kinds == ["decision"]
