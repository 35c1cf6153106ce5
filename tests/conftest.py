"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import copy
import os
from typing import Any

import pytest

from ceedraft.models.graph import Graph


@pytest.fixture(autouse=True, scope="session")
def clear_cee_env_overrides() -> None:
    """Drop CEE_* overrides so tests see configured defaults.

    Set CEE_TEST_KEEP_ENV=true to keep them for debugging.
    """
    if os.environ.get("CEE_TEST_KEEP_ENV", "").lower() == "true":
        return
    for name in [k for k in os.environ if k.startswith("CEE_")]:
        del os.environ[name]
    os.environ.pop("ENGINE_BASE_URL", None)


def _structural(source: str, target: str) -> dict[str, Any]:
    return {
        "from": source,
        "to": target,
        "strength_mean": 1.0,
        "strength_std": 0.01,
        "belief_exists": 1.0,
        "effect_direction": "positive",
    }


def _causal(source: str, target: str, mean: float, exists: float = 0.85) -> dict[str, Any]:
    return {
        "from": source,
        "to": target,
        "strength_mean": mean,
        "strength_std": 0.1,
        "belief_exists": exists,
        "effect_direction": "positive" if mean > 0 else "negative",
    }


VALID_GRAPH: dict[str, Any] = {
    "nodes": [
        {"id": "dec_pricing", "kind": "decision", "label": "Pricing strategy"},
        {
            "id": "opt_raise",
            "kind": "option",
            "label": "Raise price",
            "data": {"interventions": {"fac_price": 12.0}},
        },
        {
            "id": "opt_hold",
            "kind": "option",
            "label": "Hold price",
            "data": {"interventions": {"fac_price": 10.0}},
        },
        {"id": "fac_price", "kind": "factor", "label": "Unit price", "data": {"value": 10.0}},
        {"id": "fac_demand", "kind": "factor", "label": "Demand"},
        {"id": "out_revenue", "kind": "outcome", "label": "Revenue"},
        {"id": "risk_churn", "kind": "risk", "label": "Customer churn"},
        {"id": "goal_profit", "kind": "goal", "label": "Maximise profit"},
    ],
    "edges": [
        _structural("dec_pricing", "opt_raise"),
        _structural("dec_pricing", "opt_hold"),
        _structural("opt_raise", "fac_price"),
        _structural("opt_hold", "fac_price"),
        _causal("fac_price", "fac_demand", -0.6),
        _causal("fac_price", "out_revenue", 0.7),
        _causal("fac_demand", "out_revenue", 0.5),
        _causal("fac_demand", "risk_churn", -0.4),
        _causal("out_revenue", "goal_profit", 0.8, exists=0.9),
        _causal("risk_churn", "goal_profit", -0.3, exists=0.9),
    ],
}


@pytest.fixture
def valid_graph_payload() -> dict[str, Any]:
    """A complete, violation-free graph payload."""
    return copy.deepcopy(VALID_GRAPH)


@pytest.fixture
def valid_graph(valid_graph_payload: dict[str, Any]) -> Graph:
    """The valid payload as a typed graph."""
    return Graph.model_validate(valid_graph_payload)


@pytest.fixture
def status_quo_payload(valid_graph_payload: dict[str, Any]) -> dict[str, Any]:
    """Valid graph plus a status-quo option with no outgoing edges."""
    valid_graph_payload["nodes"].append(
        {"id": "opt_status_quo", "kind": "option", "label": "Keep the status quo"}
    )
    valid_graph_payload["edges"].append(_structural("dec_pricing", "opt_status_quo"))
    return valid_graph_payload


@pytest.fixture
def droppable_status_quo_payload(status_quo_payload: dict[str, Any]) -> dict[str, Any]:
    """Status-quo graph where no sibling option carries interventions."""
    for node in status_quo_payload["nodes"]:
        if node["kind"] == "option":
            node.pop("data", None)
    return status_quo_payload
