"""Structural detectors.

Pure functions that inspect a graph and report problems without mutating
it. The validator turns their findings into coded issues and the repair
engine turns them into fixes.
"""

from __future__ import annotations

import math
import re
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ceedraft.models.graph import ALLOWED_EDGE_PATTERNS, STRUCTURAL_PATTERNS

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ceedraft.models.graph import Edge, Graph

MINIMUM_STRUCTURE_KINDS: tuple[str, ...] = ("goal", "decision", "option")

_STATUS_QUO_PATTERNS = [
    re.compile(r"\bstatus\s*quo\b", re.IGNORECASE),
    re.compile(r"\bdo\s+nothing\b", re.IGNORECASE),
    re.compile(r"\bno\s+action\b", re.IGNORECASE),
    re.compile(r"\bno\s+change\b", re.IGNORECASE),
    re.compile(r"\bbaseline\b", re.IGNORECASE),
    re.compile(r"\bcurrent\b", re.IGNORECASE),
    re.compile(r"\bas\s+is\b", re.IGNORECASE),
]


# --- adjacency helpers ---


def build_adjacency(graph: Graph, *, undirected: bool = False) -> dict[str, list[str]]:
    """Adjacency list over edges whose endpoints both exist."""
    node_ids = {node.id for node in graph.nodes}
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in graph.edges:
        if edge.from_ not in node_ids or edge.to not in node_ids:
            continue
        adjacency[edge.from_].append(edge.to)
        if undirected:
            adjacency[edge.to].append(edge.from_)
    return adjacency


def reachable_from(start: Iterable[str], adjacency: dict[str, list[str]]) -> set[str]:
    """All node IDs reachable from ``start`` (start nodes included)."""
    seen: set[str] = set()
    queue = deque(start)
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        queue.extend(n for n in adjacency.get(current, []) if n not in seen)
    return seen


def edge_kind_pair(edge: Edge, kinds: dict[str, str]) -> tuple[str, str] | None:
    """``(fromKind, toKind)`` for an edge, or None if it dangles."""
    from_kind = kinds.get(edge.from_)
    to_kind = kinds.get(edge.to)
    if from_kind is None or to_kind is None:
        return None
    return from_kind, to_kind


def is_structural_edge(edge: Edge, kinds: dict[str, str]) -> bool:
    return edge_kind_pair(edge, kinds) in STRUCTURAL_PATTERNS


def effective_direction(edge: Edge) -> str | None:
    """Declared direction, falling back to the sign of ``strength_mean``."""
    if edge.effect_direction is not None:
        return edge.effect_direction
    mean = edge.strength_mean
    if mean is None or not math.isfinite(mean) or mean == 0:
        return None
    return "positive" if mean > 0 else "negative"


# --- edge-level detectors ---


def find_dangling_edges(graph: Graph) -> list[Edge]:
    """Edges whose ``from`` or ``to`` names a missing node."""
    node_ids = {node.id for node in graph.nodes}
    return [e for e in graph.edges if e.from_ not in node_ids or e.to not in node_ids]


def find_invalid_edge_patterns(graph: Graph) -> list[Edge]:
    """Edges whose kind pair is outside the closed-world allow-list."""
    kinds = graph.kind_map()
    invalid: list[Edge] = []
    for edge in graph.edges:
        pair = edge_kind_pair(edge, kinds)
        if pair is not None and pair not in ALLOWED_EDGE_PATTERNS:
            invalid.append(edge)
    return invalid


def detect_cycles(graph: Graph) -> list[list[str]]:
    """Find cycles with an iterative DFS.

    Returns:
        One node-ID path per back edge found, closing node repeated at the
        end (``[a, b, a]``). Traversal order is by node ID, so results are
        deterministic.
    """
    adjacency = build_adjacency(graph)
    for targets in adjacency.values():
        targets.sort()

    white, grey, black = 0, 1, 2
    colour: dict[str, int] = dict.fromkeys(sorted(n.id for n in graph.nodes), white)
    cycles: list[list[str]] = []

    for root in list(colour):
        if colour[root] != white:
            continue
        stack: list[tuple[str, int]] = [(root, 0)]
        path: list[str] = [root]
        colour[root] = grey
        while stack:
            node, index = stack[-1]
            targets = adjacency.get(node, [])
            if index < len(targets):
                stack[-1] = (node, index + 1)
                target = targets[index]
                if colour[target] == grey:
                    start = path.index(target)
                    cycles.append([*path[start:], target])
                elif colour[target] == white:
                    colour[target] = grey
                    stack.append((target, 0))
                    path.append(target)
            else:
                colour[node] = black
                stack.pop()
                path.pop()
    return cycles


# --- node-level detectors ---


def find_missing_kinds(
    graph: Graph, required: Iterable[str] = MINIMUM_STRUCTURE_KINDS
) -> list[str]:
    """Required node kinds that have no node in the graph."""
    present = {node.kind for node in graph.nodes}
    return [kind for kind in required if kind not in present]


def find_orphan_outcomes(graph: Graph) -> list[str]:
    """Outcome/risk nodes without an outgoing edge to a goal."""
    kinds = graph.kind_map()
    wired = {e.from_ for e in graph.edges if kinds.get(e.to) == "goal"}
    return [n.id for n in graph.nodes if n.kind in ("outcome", "risk") and n.id not in wired]


def find_orphan_factors(graph: Graph) -> list[str]:
    """Factors without an inbound edge from an option or another factor.

    Factors already classified as external or observable are exogenous
    and never reported.
    """
    kinds = graph.kind_map()
    fed = {e.to for e in graph.edges if kinds.get(e.from_) in ("option", "factor")}
    return [
        n.id
        for n in graph.nodes
        if n.kind == "factor"
        and n.category not in ("external", "observable")
        and n.id not in fed
    ]


def find_unreachable_factors(graph: Graph) -> list[str]:
    """Factors with no directed path from any option."""
    adjacency = build_adjacency(graph)
    options = [n.id for n in graph.nodes if n.kind == "option"]
    reached = reachable_from(options, adjacency)
    return [n.id for n in graph.nodes if n.kind == "factor" and n.id not in reached]


def find_disconnected_options(graph: Graph) -> list[str]:
    """Options with no directed path to any goal."""
    adjacency = build_adjacency(graph)
    goals = {n.id for n in graph.nodes if n.kind == "goal"}
    disconnected: list[str] = []
    for node in graph.nodes:
        if node.kind != "option":
            continue
        if not reachable_from([node.id], adjacency) & goals:
            disconnected.append(node.id)
    return disconnected


def find_status_quo_options(graph: Graph) -> list[str]:
    """Options with zero outgoing edges."""
    sources = {e.from_ for e in graph.edges}
    return [n.id for n in graph.nodes if n.kind == "option" and n.id not in sources]


def is_status_quo_label(label: str) -> bool:
    """True for labels such as "Keep the status quo" or "Do nothing"."""
    return any(pattern.search(label) for pattern in _STATUS_QUO_PATTERNS)


def has_path_to_goal(graph: Graph, node_id: str) -> bool:
    adjacency = build_adjacency(graph)
    goals = {n.id for n in graph.nodes if n.kind == "goal"}
    return bool(reachable_from([node_id], adjacency) & goals)


# --- weight degeneracy ---


@dataclass
class UniformStrengthReport:
    """Whether causal edge strengths collapse to a single value.

    Attributes:
        detected: True when more than ``min_edges - 1`` causal edges all
            share one strength (rounded to 2 decimals).
        edge_count: Number of causal edges with a finite strength.
        distinct_values: Distinct rounded strengths.
        value: The shared strength when detected.
    """

    detected: bool
    edge_count: int
    distinct_values: list[float] = field(default_factory=list)
    value: float | None = None


@dataclass
class UniformDirectionReport:
    """Whether all causal edges point the same way."""

    detected: bool
    edge_count: int
    direction: str | None = None


def _causal_edges(graph: Graph) -> list[Edge]:
    kinds = graph.kind_map()
    return [
        e
        for e in graph.edges
        if edge_kind_pair(e, kinds) is not None and not is_structural_edge(e, kinds)
    ]


def detect_uniform_strengths(graph: Graph, min_edges: int = 3) -> UniformStrengthReport:
    """Flag graphs whose causal strengths are all identical."""
    values = [
        round(abs(e.strength_mean), 2)
        for e in _causal_edges(graph)
        if e.strength_mean is not None and math.isfinite(e.strength_mean)
    ]
    distinct = sorted(set(values))
    detected = len(values) >= min_edges and len(distinct) == 1
    return UniformStrengthReport(
        detected=detected,
        edge_count=len(values),
        distinct_values=distinct,
        value=distinct[0] if detected else None,
    )


def detect_uniform_direction(graph: Graph, min_edges: int = 4) -> UniformDirectionReport:
    """Flag graphs whose causal edges all share one sign."""
    directions = [d for e in _causal_edges(graph) if (d := effective_direction(e)) is not None]
    distinct = set(directions)
    detected = len(directions) >= min_edges and len(distinct) == 1
    return UniformDirectionReport(
        detected=detected,
        edge_count=len(directions),
        direction=directions[0] if detected else None,
    )


# --- acceptance ---


@dataclass
class ConnectivityDiagnostic:
    """Result of the connected-minimum-structure check.

    Attributes:
        passed: True if some decision shares a connected component with
            both a goal and an option.
        decision_ids: All decision nodes examined.
        reachable_goals: Goals found from any decision.
        reachable_options: Options found from any decision.
        missing_kinds: Required kinds absent from the graph entirely.
    """

    passed: bool
    decision_ids: list[str] = field(default_factory=list)
    reachable_goals: list[str] = field(default_factory=list)
    reachable_options: list[str] = field(default_factory=list)
    missing_kinds: list[str] = field(default_factory=list)


def check_connected_minimum_structure(graph: Graph) -> ConnectivityDiagnostic:
    """Check that a decision connects to both a goal and an option.

    Reachability ignores edge direction: the check only asks whether the
    decision, goal and option sit in one connected component.
    """
    kinds = graph.kind_map()
    adjacency = build_adjacency(graph, undirected=True)
    decisions = sorted(n.id for n in graph.nodes if n.kind == "decision")

    goals: set[str] = set()
    options: set[str] = set()
    passed = False
    for decision_id in decisions:
        component = reachable_from([decision_id], adjacency)
        found_goals = {n for n in component if kinds.get(n) == "goal"}
        found_options = {n for n in component if kinds.get(n) == "option"}
        goals |= found_goals
        options |= found_options
        if found_goals and found_options:
            passed = True

    return ConnectivityDiagnostic(
        passed=passed,
        decision_ids=decisions,
        reachable_goals=sorted(goals),
        reachable_options=sorted(options),
        missing_kinds=find_missing_kinds(graph),
    )
