"""Factor classification fixes: unreachable factors and category repair."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ceedraft.graph.detectors import find_unreachable_factors, has_path_to_goal
from ceedraft.repair.synthetic import Repair

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph, Node

MIN_PRIOR_MARGIN = 0.1
PRIOR_MARGIN_RATIO = 0.5


@dataclass
class UnreachableFactorResult:
    """Factors no option can reach.

    Attributes:
        reclassified: Factors switched to ``category="external"``.
        marked_droppable: Unreachable factors that also have no path to a
            goal. Retained in the graph, reported for downstream pruning.
        repairs: Applied mutations.
    """

    reclassified: list[str] = field(default_factory=list)
    marked_droppable: list[str] = field(default_factory=list)
    repairs: list[Repair] = field(default_factory=list)


def synthesise_uniform_prior(value: float | None) -> dict[str, Any]:
    """Uniform prior centred on a former point value.

    Binary (0/1), missing or out-of-range values get the full unit range.
    """
    if value is None or value in (0.0, 1.0) or not 0.0 <= value <= 1.0:
        low, high = 0.0, 1.0
    else:
        margin = max(MIN_PRIOR_MARGIN, abs(value) * PRIOR_MARGIN_RATIO)
        low = max(0.0, value - margin)
        high = min(1.0, value + margin)
    return {"distribution": "uniform", "range_min": round(low, 4), "range_max": round(high, 4)}


def _strip_value(node: Node) -> float | None:
    if node.data is None or node.data.value is None:
        return None
    value = node.data.value
    node.data.value = None
    return value


def handle_unreachable_factors(graph: Graph) -> UnreachableFactorResult:
    """Reclassify factors no option reaches as external.

    The factor's point value is replaced by a uniform prior. Nothing is
    deleted; factors with no route to a goal are only reported.
    """
    result = UnreachableFactorResult()
    nodes = graph.node_map()
    for factor_id in find_unreachable_factors(graph):
        node = nodes[factor_id]
        if node.category != "external":
            previous = node.category
            value = _strip_value(node)
            node.category = "external"
            if node.prior is None:
                node.prior = synthesise_uniform_prior(value)
            result.reclassified.append(factor_id)
            result.repairs.append(
                Repair(
                    "FACTOR_RECLASSIFIED_EXTERNAL",
                    f"nodes[{factor_id}]",
                    f"category {previous or 'unset'} -> external",
                )
            )
        if not has_path_to_goal(graph, factor_id):
            result.marked_droppable.append(factor_id)
    return result


def fix_factor_categories(graph: Graph) -> list[Repair]:
    """Align explicit factor categories with graph structure."""
    kinds = graph.kind_map()
    controlled = {e.to for e in graph.edges if kinds.get(e.from_) == "option"}
    repairs: list[Repair] = []
    for node in graph.nodes:
        if node.kind != "factor" or node.category is None:
            continue
        path = f"nodes[{node.id}].category"
        is_controlled = node.id in controlled
        if (node.category == "controllable") != is_controlled:
            has_value = node.data is not None and node.data.value is not None
            corrected = (
                "controllable" if is_controlled else ("observable" if has_value else "external")
            )
            repairs.append(
                Repair("CATEGORY_MISMATCH", path, f"category {node.category} -> {corrected}")
            )
            node.category = corrected
        if node.category == "external" and node.data is not None and node.data.value is not None:
            value = _strip_value(node)
            if node.prior is None:
                node.prior = synthesise_uniform_prior(value)
            repairs.append(Repair("EXTERNAL_HAS_DATA", path, "value replaced by uniform prior"))
    return repairs
