"""Deterministic graph validator.

Produces coded issues consumed by violation bucketing in the repair
engine and surfaced as ``validation_issues`` in the response.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from ceedraft.graph.detectors import (
    build_adjacency,
    detect_cycles,
    detect_uniform_direction,
    detect_uniform_strengths,
    edge_kind_pair,
    reachable_from,
)
from ceedraft.graph.validation_types import ValidationIssue, ValidationResult
from ceedraft.models.graph import ALLOWED_EDGE_PATTERNS, STRUCTURAL_PATTERNS

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ceedraft.models.graph import Edge, Graph, Node

DEFAULT_MAX_NODES = 50
DEFAULT_MAX_EDGES = 200
MIN_OPTIONS = 2

CANONICAL_STRUCTURAL = (1.0, 0.01, 1.0)


def _edge_path(edge: Edge, index: int) -> str:
    return f"edges[{edge.id or index}]"


def is_canonical_structural(edge: Edge) -> bool:
    mean, std, exists = CANONICAL_STRUCTURAL
    return (
        edge.strength_mean == mean
        and edge.strength_std == std
        and edge.belief_exists == exists
    )


def has_non_finite(edge: Edge) -> bool:
    return any(
        value is not None and not math.isfinite(value)
        for value in (edge.strength_mean, edge.strength_std, edge.belief_exists)
    )


def has_sign_mismatch(edge: Edge) -> bool:
    mean = edge.strength_mean
    if edge.effect_direction is None or mean is None or not math.isfinite(mean) or mean == 0:
        return False
    return (mean > 0) != (edge.effect_direction == "positive")


class GraphValidator:
    """Validate graph structure, topology and edge numerics.

    Attributes:
        max_nodes: Node cap reported as NODE_LIMIT_EXCEEDED.
        max_edges: Edge cap reported as EDGE_LIMIT_EXCEEDED.
    """

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES, max_edges: int = DEFAULT_MAX_EDGES):
        self.max_nodes = max_nodes
        self.max_edges = max_edges

    def validate(self, graph: Graph) -> ValidationResult:
        """Validate a graph.

        Never raises for graph content; every problem becomes an issue.
        """
        result = ValidationResult()
        result.errors.extend(self._check_limits(graph))
        result.errors.extend(self._check_required_kinds(graph))
        result.errors.extend(self._check_edges(graph))
        result.errors.extend(self._check_cycles(graph))
        result.errors.extend(self._check_option_paths(graph))
        result.errors.extend(self._check_interventions(graph))
        errors, warnings = self._check_factor_categories(graph)
        result.errors.extend(errors)
        result.warnings.extend(warnings)
        result.warnings.extend(self._check_degeneracy(graph))
        return result

    def _check_limits(self, graph: Graph) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if len(graph.nodes) > self.max_nodes:
            issues.append(
                ValidationIssue(
                    code="NODE_LIMIT_EXCEEDED",
                    message=f"{len(graph.nodes)} nodes exceeds cap of {self.max_nodes}",
                    path="nodes",
                )
            )
        if len(graph.edges) > self.max_edges:
            issues.append(
                ValidationIssue(
                    code="EDGE_LIMIT_EXCEEDED",
                    message=f"{len(graph.edges)} edges exceeds cap of {self.max_edges}",
                    path="edges",
                )
            )
        return issues

    def _check_required_kinds(self, graph: Graph) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        if not graph.has_kind("goal"):
            issues.append(ValidationIssue("MISSING_GOAL", "Graph has no goal node", path="nodes"))
        if not graph.has_kind("decision"):
            issues.append(
                ValidationIssue("MISSING_DECISION", "Graph has no decision node", path="nodes")
            )
        option_count = len(graph.nodes_of_kind("option"))
        if option_count < MIN_OPTIONS:
            issues.append(
                ValidationIssue(
                    "INSUFFICIENT_OPTIONS",
                    f"Graph has {option_count} option(s); at least {MIN_OPTIONS} required",
                    path="nodes",
                )
            )
        if not graph.has_kind("outcome") and not graph.has_kind("risk"):
            issues.append(
                ValidationIssue(
                    "MISSING_BRIDGE",
                    "Graph has no outcome or risk node linking factors to the goal",
                    path="nodes",
                )
            )
        return issues

    def _check_edges(self, graph: Graph) -> list[ValidationIssue]:
        kinds = graph.kind_map()
        issues: list[ValidationIssue] = []
        for index, edge in enumerate(graph.edges):
            path = _edge_path(edge, index)
            pair = edge_kind_pair(edge, kinds)
            if pair is None:
                missing = edge.from_ if edge.from_ not in kinds else edge.to
                issues.append(
                    ValidationIssue(
                        "INVALID_EDGE_REF",
                        f"Edge references missing node '{missing}'",
                        path=path,
                        edge_id=edge.id,
                    )
                )
                continue

            from_kind, to_kind = pair
            if from_kind == "goal":
                issues.append(
                    ValidationIssue(
                        "GOAL_HAS_OUTGOING",
                        f"Goal '{edge.from_}' has an outgoing edge",
                        path=path,
                        node_id=edge.from_,
                        edge_id=edge.id,
                    )
                )
            elif to_kind == "decision":
                issues.append(
                    ValidationIssue(
                        "DECISION_HAS_INCOMING",
                        f"Decision '{edge.to}' has an incoming edge",
                        path=path,
                        node_id=edge.to,
                        edge_id=edge.id,
                    )
                )
            elif pair not in ALLOWED_EDGE_PATTERNS:
                issues.append(
                    ValidationIssue(
                        "INVALID_EDGE_TYPE",
                        f"Edge pattern {from_kind} -> {to_kind} is not allowed",
                        path=path,
                        edge_id=edge.id,
                    )
                )

            if has_non_finite(edge):
                issues.append(
                    ValidationIssue("NAN_VALUE", "Edge has a non-finite value", path, edge_id=edge.id)
                )
            elif edge.belief_exists is not None and not 0.0 <= edge.belief_exists <= 1.0:
                issues.append(
                    ValidationIssue(
                        "BELIEF_OUT_OF_RANGE",
                        f"belief_exists {edge.belief_exists} outside [0, 1]",
                        path,
                        edge_id=edge.id,
                    )
                )
            if has_sign_mismatch(edge):
                issues.append(
                    ValidationIssue(
                        "SIGN_MISMATCH",
                        "strength_mean sign disagrees with effect_direction",
                        path,
                        edge_id=edge.id,
                    )
                )
            if pair in STRUCTURAL_PATTERNS and not is_canonical_structural(edge):
                issues.append(
                    ValidationIssue(
                        "STRUCTURAL_EDGE_NOT_CANONICAL",
                        f"Structural edge {from_kind} -> {to_kind} must be 1 / 0.01 / 1",
                        path,
                        edge_id=edge.id,
                    )
                )
        return issues

    def _check_cycles(self, graph: Graph) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                "CYCLE_DETECTED",
                f"Cycle detected: {' -> '.join(cycle)}",
                path="edges",
                node_id=cycle[0],
            )
            for cycle in detect_cycles(graph)
        ]

    def _check_option_paths(self, graph: Graph) -> list[ValidationIssue]:
        adjacency = build_adjacency(graph)
        kinds = graph.kind_map()
        goals = {n.id for n in graph.nodes if n.kind == "goal"}
        bridges = {n.id for n in graph.nodes if n.kind in ("outcome", "risk")}
        decisions = [n.id for n in graph.nodes if n.kind == "decision"]
        from_decisions = reachable_from(decisions, adjacency) if decisions else set()

        issues: list[ValidationIssue] = []
        for node in graph.nodes:
            if node.kind != "option":
                continue
            path = f"nodes[{node.id}]"
            reached = reachable_from([node.id], adjacency)
            if decisions and node.id not in from_decisions:
                issues.append(
                    ValidationIssue(
                        "UNREACHABLE_FROM_DECISION",
                        f"Option '{node.id}' is not reachable from any decision",
                        path,
                        node_id=node.id,
                    )
                )
            if goals and not reached & goals:
                issues.append(
                    ValidationIssue(
                        "NO_PATH_TO_GOAL",
                        f"Option '{node.id}' has no path to a goal",
                        path,
                        node_id=node.id,
                    )
                )
            has_factor_edge = any(kinds.get(t) == "factor" for t in adjacency.get(node.id, []))
            if has_factor_edge and not reached & bridges:
                issues.append(
                    ValidationIssue(
                        "NO_EFFECT_PATH",
                        f"Option '{node.id}' reaches no outcome or risk",
                        path,
                        node_id=node.id,
                    )
                )
        return issues

    def _check_interventions(self, graph: Graph) -> list[ValidationIssue]:
        kinds = graph.kind_map()
        issues: list[ValidationIssue] = []
        for node in graph.nodes:
            if node.kind != "option":
                continue
            for target in sorted(node.interventions):
                if kinds.get(target) != "factor":
                    issues.append(
                        ValidationIssue(
                            "INVALID_INTERVENTION_REF",
                            f"Option '{node.id}' intervenes on unknown factor '{target}'",
                            f"nodes[{node.id}].data.interventions",
                            node_id=node.id,
                        )
                    )
        return issues

    def _check_factor_categories(
        self, graph: Graph
    ) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
        kinds = graph.kind_map()
        controlled = {e.to for e in graph.edges if kinds.get(e.from_) == "option"}
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        for node in _factors_with_category(graph.nodes):
            path = f"nodes[{node.id}].category"
            value = node.data.value if node.data is not None else None
            if (node.category == "controllable") != (node.id in controlled):
                errors.append(
                    ValidationIssue(
                        "CATEGORY_MISMATCH",
                        f"Factor '{node.id}' is '{node.category}' but "
                        f"{'has' if node.id in controlled else 'lacks'} an option edge",
                        path,
                        node_id=node.id,
                    )
                )
            elif node.category == "controllable" and value is None:
                warnings.append(
                    ValidationIssue(
                        "CONTROLLABLE_MISSING_DATA",
                        f"Controllable factor '{node.id}' has no baseline value",
                        path,
                        severity="warning",
                        node_id=node.id,
                    )
                )
            if node.category == "external" and value is not None:
                errors.append(
                    ValidationIssue(
                        "EXTERNAL_HAS_DATA",
                        f"External factor '{node.id}' carries a value",
                        path,
                        node_id=node.id,
                    )
                )
        return errors, warnings

    def _check_degeneracy(self, graph: Graph) -> list[ValidationIssue]:
        warnings: list[ValidationIssue] = []
        strengths = detect_uniform_strengths(graph)
        if strengths.detected:
            warnings.append(
                ValidationIssue(
                    "UNIFORM_STRENGTHS",
                    f"All {strengths.edge_count} causal edges share strength {strengths.value}",
                    path="edges",
                    severity="warning",
                )
            )
        direction = detect_uniform_direction(graph)
        if direction.detected:
            warnings.append(
                ValidationIssue(
                    "UNIFORM_DIRECTION",
                    f"All {direction.edge_count} causal edges are {direction.direction}",
                    path="edges",
                    severity="warning",
                )
            )
        return warnings


def _factors_with_category(nodes: Iterable[Node]) -> list[Node]:
    return [n for n in nodes if n.kind == "factor" and n.category is not None]


def format_repair_feedback(issues: Iterable[ValidationIssue]) -> str:
    """Render violations as feedback for a model-assisted repair call."""
    lines = ["## Graph Violations", ""]
    for issue in issues:
        where = f" at {issue.path}" if issue.path else ""
        lines.append(f"- [{issue.code}]{where}: {issue.message}")
    lines.extend(
        [
            "",
            "Return the complete corrected graph. Keep every node ID that is not",
            "named above and follow decision -> option -> factor -> outcome/risk -> goal.",
        ]
    )
    return "\n".join(lines)
