"""Stage-boundary checkpoints.

A checkpoint records counts and a small stratified edge sample after a
named stage. Samples are the first thing to go when the whole set grows
past its byte budget; counters are always kept.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ceedraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

log = get_logger(__name__)

POST_ADAPTER_NORMALISATION = "post_adapter_normalisation"
POST_NORMALISATION = "post_normalisation"
POST_REPAIR = "post_repair"
POST_STABILISATION = "post_stabilisation"
PRE_BOUNDARY = "pre_boundary"

CHECKPOINT_STAGES = (
    POST_ADAPTER_NORMALISATION,
    POST_NORMALISATION,
    POST_REPAIR,
    POST_STABILISATION,
    PRE_BOUNDARY,
)

MISSING = "MISSING"

EDGE_FIELDS = ("strength_mean", "strength_std", "belief_exists", "effect_direction", "weight")
SAMPLE_FIELDS = ("strength_mean", "strength_std", "belief_exists", "effect_direction")

# Edge categories by source node ID prefix.
STRATA: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("structural", ("dec_", "opt_")),
    ("causal", ("fac_",)),
    ("bridge", ("out_", "risk_")),
)


@dataclass
class Checkpoint:
    """Graph state after one stage."""

    stage: str
    node_count: int
    edge_count: int
    edge_field_presence: dict[str, int]
    node_field_presence: dict[str, int]
    sample_edges: list[dict[str, Any]] = field(default_factory=list)
    nested_strength_detected: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stage": self.stage,
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "edge_field_presence": dict(self.edge_field_presence),
            "node_field_presence": dict(self.node_field_presence),
            "sample_edges": [dict(e) for e in self.sample_edges],
        }
        if self.nested_strength_detected is not None:
            data["nested_strength_detected"] = self.nested_strength_detected
        return data


def _pair_key(edge: Mapping[str, Any]) -> str:
    return f"{edge.get('from', '')}::{edge.get('to', '')}"


def _stratum(edge: Mapping[str, Any]) -> str | None:
    source = str(edge.get("from", ""))
    for name, prefixes in STRATA:
        if source.startswith(prefixes):
            return name
    return None


def sample_edges(edges: Sequence[Mapping[str, Any]], size: int = 3) -> list[dict[str, Any]]:
    """Pick up to ``size`` edges, one per category first.

    Edges are considered in ``from::to`` order. When no edge falls in a
    category the first ``size`` edges in that order are returned.
    """
    ordered = sorted((e for e in edges if isinstance(e, dict)), key=_pair_key)
    picked: list[Mapping[str, Any]] = []
    for name, _prefixes in STRATA:
        first = next((e for e in ordered if _stratum(e) == name), None)
        if first is not None:
            picked.append(first)
    if not picked:
        picked = ordered[:size]
    else:
        for edge in ordered:
            if len(picked) >= size:
                break
            if not any(edge is p for p in picked):
                picked.append(edge)
    return [_render_sample(e) for e in picked[:size]]


def _render_sample(edge: Mapping[str, Any]) -> dict[str, Any]:
    sample: dict[str, Any] = {"from": edge.get("from"), "to": edge.get("to")}
    if edge.get("id"):
        sample["id"] = edge["id"]
    for name in SAMPLE_FIELDS:
        value = edge.get(name)
        sample[name] = MISSING if value is None else value
    return sample


def _node_field_presence(nodes: Sequence[Any]) -> dict[str, int]:
    presence = {
        "options_total": 0,
        "options_with_interventions": 0,
        "factors_with_value": 0,
        "goals_with_threshold": 0,
    }
    for node in nodes:
        if not isinstance(node, dict):
            continue
        kind = str(node.get("kind", "")).lower()
        data = node.get("data") if isinstance(node.get("data"), dict) else {}
        if kind == "option":
            presence["options_total"] += 1
            if data.get("interventions"):
                presence["options_with_interventions"] += 1
        elif kind == "factor" and data.get("value") is not None:
            presence["factors_with_value"] += 1
        elif kind == "goal" and node.get("goal_threshold") is not None:
            presence["goals_with_threshold"] += 1
    return presence


def capture_checkpoint(
    stage: str,
    graph_payload: Any,
    *,
    sample_size: int = 3,
    detect_nested: bool = False,
) -> Checkpoint:
    """Snapshot a graph payload.

    Args:
        stage: Stage boundary name.
        graph_payload: ``{nodes, edges}`` dict; anything else yields zero counts.
        sample_size: Maximum sampled edges.
        detect_nested: Record whether any edge uses a nested ``strength`` object.
    """
    nodes = graph_payload.get("nodes") if isinstance(graph_payload, dict) else None
    edges = graph_payload.get("edges") if isinstance(graph_payload, dict) else None
    nodes = nodes if isinstance(nodes, list) else []
    edges = edges if isinstance(edges, list) else []
    dict_edges = [e for e in edges if isinstance(e, dict)]

    presence = {name: sum(1 for e in dict_edges if e.get(name) is not None) for name in EDGE_FIELDS}
    nested = None
    if detect_nested:
        nested = any(isinstance(e.get("strength"), dict) for e in dict_edges)

    return Checkpoint(
        stage=stage,
        node_count=len(nodes),
        edge_count=len(edges),
        edge_field_presence=presence,
        node_field_presence=_node_field_presence(nodes),
        sample_edges=sample_edges(dict_edges, sample_size),
        nested_strength_detected=nested,
    )


def serialized_size(checkpoints: Sequence[Checkpoint]) -> int:
    """Compact JSON size of the checkpoint set, in bytes."""
    data = [c.to_dict() for c in checkpoints]
    return len(json.dumps(data, separators=(",", ":"), default=str).encode("utf-8"))


def apply_checkpoint_size_guard(checkpoints: Sequence[Checkpoint], max_bytes: int) -> bool:
    """Drop every edge sample when the set exceeds ``max_bytes``.

    Returns:
        True if samples were dropped.
    """
    size = serialized_size(checkpoints)
    if size <= max_bytes:
        return False
    for checkpoint in checkpoints:
        checkpoint.sample_edges = []
    log.info("checkpoint_samples_dropped", bytes=size, max_bytes=max_bytes)
    return True
