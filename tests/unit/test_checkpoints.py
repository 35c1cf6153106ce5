"""Tests for stage-boundary checkpoints."""

from __future__ import annotations

from typing import Any

from ceedraft.pipeline.checkpoints import (
    MISSING,
    POST_ADAPTER_NORMALISATION,
    POST_REPAIR,
    apply_checkpoint_size_guard,
    capture_checkpoint,
    sample_edges,
    serialized_size,
)


class TestCaptureCheckpoint:
    """Tests for capture_checkpoint."""

    def test_counts(self, valid_graph_payload: dict[str, Any]) -> None:
        checkpoint = capture_checkpoint(POST_REPAIR, valid_graph_payload)
        assert checkpoint.node_count == 8
        assert checkpoint.edge_count == 10
        assert checkpoint.edge_field_presence["strength_mean"] == 10
        assert checkpoint.edge_field_presence["weight"] == 0
        assert checkpoint.node_field_presence == {
            "options_total": 2,
            "options_with_interventions": 2,
            "factors_with_value": 1,
            "goals_with_threshold": 0,
        }
        assert "nested_strength_detected" not in checkpoint.to_dict()

    def test_nested_detection(self) -> None:
        payload = {"nodes": [], "edges": [{"from": "a", "to": "b", "strength": {"mean": 0.3}}]}
        checkpoint = capture_checkpoint(POST_ADAPTER_NORMALISATION, payload, detect_nested=True)
        assert checkpoint.nested_strength_detected is True

    def test_non_graph_payload(self) -> None:
        checkpoint = capture_checkpoint(POST_REPAIR, "not a graph")
        assert checkpoint.node_count == 0
        assert checkpoint.edge_count == 0
        assert checkpoint.sample_edges == []


class TestSampleEdges:
    """Tests for stratified sampling."""

    def test_one_per_stratum(self, valid_graph_payload: dict[str, Any]) -> None:
        samples = sample_edges(valid_graph_payload["edges"])
        assert [(s["from"], s["to"]) for s in samples] == [
            ("dec_pricing", "opt_hold"),
            ("fac_demand", "out_revenue"),
            ("out_revenue", "goal_profit"),
        ]

    def test_fills_from_sorted_order(self) -> None:
        edges = [
            {"from": "opt_b", "to": "fac_x"},
            {"from": "dec_a", "to": "opt_b"},
            {"from": "opt_c", "to": "fac_x"},
        ]
        samples = sample_edges(edges, size=2)
        assert [(s["from"], s["to"]) for s in samples] == [
            ("dec_a", "opt_b"),
            ("opt_b", "fac_x"),
        ]

    def test_unprefixed_ids(self) -> None:
        edges = [{"from": "b", "to": "c"}, {"from": "a", "to": "b"}]
        samples = sample_edges(edges, size=1)
        assert samples[0]["from"] == "a"

    def test_missing_fields_marked(self) -> None:
        samples = sample_edges([{"id": "e1", "from": "fac_a", "to": "out_b", "strength_mean": 0.2}])
        assert samples[0]["id"] == "e1"
        assert samples[0]["strength_mean"] == 0.2
        assert samples[0]["strength_std"] == MISSING


class TestSizeGuard:
    """Tests for apply_checkpoint_size_guard."""

    def test_within_budget(self, valid_graph_payload: dict[str, Any]) -> None:
        checkpoints = [capture_checkpoint(POST_REPAIR, valid_graph_payload)]
        assert not apply_checkpoint_size_guard(checkpoints, 1_000_000)
        assert checkpoints[0].sample_edges

    def test_drops_samples_keeps_counts(self, valid_graph_payload: dict[str, Any]) -> None:
        checkpoints = [
            capture_checkpoint(POST_ADAPTER_NORMALISATION, valid_graph_payload),
            capture_checkpoint(POST_REPAIR, valid_graph_payload),
        ]
        before = serialized_size(checkpoints)
        assert apply_checkpoint_size_guard(checkpoints, 100)
        assert all(c.sample_edges == [] for c in checkpoints)
        assert all(c.edge_count == 10 for c in checkpoints)
        assert serialized_size(checkpoints) < before
