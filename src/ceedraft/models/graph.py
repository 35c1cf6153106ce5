"""Causal decision graph models.

A graph is a DAG over a closed vocabulary of node kinds. The only legal
model-authored adjacency follows the chain

    decision -> option -> factor -> {outcome | risk} -> goal

with factor -> factor links allowed inside the causal chain. Everything
else is an invalid edge pattern and is handled by the repair engine.

Models keep unknown fields (``extra="allow"``) so that payloads produced by
an LLM survive a parse/serialise cycle without losing data the pipeline does
not interpret.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NodeKind = Literal["goal", "decision", "option", "factor", "outcome", "risk"]
EdgeOrigin = Literal["model", "repair", "enrichment", "default"]
EffectDirection = Literal["positive", "negative"]
FactorCategory = Literal["controllable", "observable", "external"]

NODE_KINDS: tuple[str, ...] = ("goal", "decision", "option", "factor", "outcome", "risk")

# Kinds that cap enforcement never trims.
PROTECTED_KINDS: frozenset[str] = frozenset({"goal", "decision", "option", "outcome", "risk"})

STRUCTURAL_PATTERNS: frozenset[tuple[str, str]] = frozenset(
    {
        ("decision", "option"),
        ("option", "factor"),
    }
)

ALLOWED_EDGE_PATTERNS: frozenset[tuple[str, str]] = STRUCTURAL_PATTERNS | frozenset(
    {
        ("factor", "factor"),
        ("factor", "outcome"),
        ("factor", "risk"),
        ("outcome", "goal"),
        ("risk", "goal"),
    }
)

GRAPH_VERSION = "1.2"


class NodeData(BaseModel):
    """Optional payload carried by option and factor nodes.

    Attributes:
        interventions: On option nodes, maps factor IDs to the value the
            option sets that factor to.
        value: Current (baseline) value of a factor.
        unit: Unit label for ``value``.
    """

    model_config = ConfigDict(extra="allow")

    interventions: dict[str, float] | None = None
    value: float | None = None
    baseline: float | None = None
    unit: str | None = None


class Node(BaseModel):
    """A single node in the decision graph."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    kind: NodeKind
    label: str = ""
    data: NodeData | None = None

    # goal nodes
    goal_threshold: float | None = None
    goal_threshold_raw: float | str | None = None
    goal_threshold_unit: str | None = None
    goal_threshold_cap: float | None = None

    # factor nodes
    category: FactorCategory | None = None
    prior: dict[str, Any] | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalise_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def interventions(self) -> dict[str, float]:
        """Intervention map, empty when the node carries none."""
        if self.data is None or not self.data.interventions:
            return {}
        return self.data.interventions


class Edge(BaseModel):
    """A directed, weighted edge.

    ``from`` is a Python keyword, so the field is ``from_`` with the wire
    alias ``from``. Construct with either name.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    from_: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    strength_mean: float | None = None
    strength_std: float | None = None
    belief_exists: float | None = None
    effect_direction: EffectDirection | None = None
    id: str | None = None
    origin: EdgeOrigin | None = None
    provenance: str | None = None
    provenance_source: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested_strength(cls, data: Any) -> Any:
        """Accept the nested ``strength: {mean, std}`` adapter shape."""
        if not isinstance(data, dict):
            return data
        strength = data.get("strength")
        if isinstance(strength, dict):
            data = dict(data)
            data.pop("strength")
            if data.get("strength_mean") is None and "mean" in strength:
                data["strength_mean"] = strength["mean"]
            if data.get("strength_std") is None and "std" in strength:
                data["strength_std"] = strength["std"]
        if "exists_probability" in data and data.get("belief_exists") is None:
            data = dict(data)
            data["belief_exists"] = data.pop("exists_probability")
        return data

    @field_validator("effect_direction", mode="before")
    @classmethod
    def _normalise_direction(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def pair_key(self) -> str:
        """``from::to`` key, shared by all parallel edges of one pair."""
        return f"{self.from_}::{self.to}"

    @property
    def is_synthetic(self) -> bool:
        return self.provenance_source == "synthetic"


class Graph(BaseModel):
    """Nodes, edges and free-form metadata."""

    model_config = ConfigDict(extra="allow")

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)

    def node_map(self) -> dict[str, Node]:
        """Map node ID to node. Later duplicates win."""
        return {node.id: node for node in self.nodes}

    def kind_map(self) -> dict[str, str]:
        """Map node ID to node kind."""
        return {node.id: node.kind for node in self.nodes}

    def nodes_of_kind(self, kind: str) -> list[Node]:
        return [node for node in self.nodes if node.kind == kind]

    def has_kind(self, kind: str) -> bool:
        return any(node.kind == kind for node in self.nodes)

    def outgoing(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.from_ == node_id]

    def incoming(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.to == node_id]

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the wire shape (``from`` keys, no null fields)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def content_hash(self) -> str:
        """Stable sha256 over the canonical JSON payload."""
        canonical = json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
