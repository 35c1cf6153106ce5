"""Status-quo option handling.

An option with zero outgoing edges cannot influence any factor. It is
wired by copying intervention targets from sibling options that do reach
factors, or reported as droppable when no sibling offers a template.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ceedraft.graph.detectors import find_status_quo_options, is_status_quo_label
from ceedraft.models.graph import NodeData
from ceedraft.repair.synthetic import Repair, structural_edge

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph


@dataclass
class StatusQuoResult:
    """Which branch fired for each disconnected option.

    Attributes:
        wired_options: Options wired from sibling templates.
        droppable_options: Options left unwired for lack of a template.
        repairs: Applied mutations.
    """

    wired_options: list[str] = field(default_factory=list)
    droppable_options: list[str] = field(default_factory=list)
    repairs: list[Repair] = field(default_factory=list)

    @property
    def fixed(self) -> bool:
        return bool(self.wired_options)

    @property
    def marked_droppable(self) -> bool:
        return bool(self.droppable_options)


def _template_targets(graph: Graph, option_id: str) -> list[str]:
    """Intervention targets of siblings that connect to factors."""
    kinds = graph.kind_map()
    targets: set[str] = set()
    for sibling in graph.nodes_of_kind("option"):
        if sibling.id == option_id:
            continue
        reaches_factor = any(kinds.get(e.to) == "factor" for e in graph.outgoing(sibling.id))
        if not reaches_factor:
            continue
        targets.update(t for t in sibling.interventions if kinds.get(t) == "factor")
    return sorted(targets)


def handle_status_quo_options(graph: Graph) -> StatusQuoResult:
    """Wire or flag every option with zero outgoing edges."""
    result = StatusQuoResult()
    nodes = graph.node_map()
    for option_id in find_status_quo_options(graph):
        targets = _template_targets(graph, option_id)
        if not targets:
            result.droppable_options.append(option_id)
            continue

        option = nodes[option_id]
        baseline: dict[str, float] = {}
        for target in targets:
            graph.edges.append(structural_edge(option_id, target, "status_quo_wiring"))
            factor_data = nodes[target].data
            if factor_data is not None and factor_data.value is not None:
                baseline[target] = factor_data.value
        if baseline and not option.interventions:
            if option.data is None:
                option.data = NodeData()
            option.data.interventions = baseline

        result.wired_options.append(option_id)
        kind = "status quo" if is_status_quo_label(option.label) else "disconnected option"
        result.repairs.append(
            Repair(
                "STATUS_QUO_WIRED",
                f"nodes[{option_id}]",
                f"wired {kind} to {', '.join(targets)}",
            )
        )
    return result
