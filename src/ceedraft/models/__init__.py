"""Pydantic models for the causal decision graph."""

from ceedraft.models.graph import (
    ALLOWED_EDGE_PATTERNS,
    GRAPH_VERSION,
    NODE_KINDS,
    PROTECTED_KINDS,
    STRUCTURAL_PATTERNS,
    Edge,
    EdgeOrigin,
    EffectDirection,
    FactorCategory,
    Graph,
    Node,
    NodeData,
    NodeKind,
)

__all__ = [
    "ALLOWED_EDGE_PATTERNS",
    "GRAPH_VERSION",
    "NODE_KINDS",
    "PROTECTED_KINDS",
    "STRUCTURAL_PATTERNS",
    "Edge",
    "EdgeOrigin",
    "EffectDirection",
    "FactorCategory",
    "Graph",
    "Node",
    "NodeData",
    "NodeKind",
]
