"""Deterministic repair engine.

Runs ``detect -> repair`` passes over a graph until a detect pass finds
no violations, a pass applies no mutations, or the pass ceiling is hit.
Every fix is idempotent, so re-running the engine on its own output is a
no-op. The engine never calls a model and never raises for graph
content; unresolved bucket C violations are reported through
``llm_repair_needed`` instead.

State machine::

    pending -> (detect -> repair)* -> stable | llm_repair_needed
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from ceedraft.graph.detectors import find_orphan_factors, find_orphan_outcomes
from ceedraft.graph.identity import assign_edge_ids, sort_edges
from ceedraft.graph.validation_types import ValidationIssue
from ceedraft.observability.logging import get_logger
from ceedraft.repair.buckets import Bucket, BucketedViolations, bucket_violations
from ceedraft.repair.caps import CapResult, enforce_caps
from ceedraft.repair.edge_filter import EdgeFilterMode, EdgeFilterResult, filter_edges
from ceedraft.repair.factors import (
    UnreachableFactorResult,
    fix_factor_categories,
    handle_unreachable_factors,
)
from ceedraft.repair.goal_inference import GoalInferenceResult, ensure_goal
from ceedraft.repair.hygiene import (
    break_cycles,
    canonicalise_structural_edges,
    fix_numeric_fields,
    remove_forbidden_topology,
    strip_dangling,
)
from ceedraft.repair.status_quo import StatusQuoResult, handle_status_quo_options
from ceedraft.repair.synthetic import Repair
from ceedraft.repair.wiring import (
    split_factor_goal_edges,
    wire_orphan_factors,
    wire_orphan_outcomes,
)

if TYPE_CHECKING:
    from ceedraft.graph.validation_types import Validator
    from ceedraft.models.graph import Graph
    from ceedraft.pipeline.config import RepairConfig

log = get_logger(__name__)

SWEEP_VERSION = "3"
DEFAULT_MAX_PASSES = 3


class SweepState(StrEnum):
    """Lifecycle of one engine run."""

    PENDING = "pending"
    STABLE = "stable"
    LLM_REPAIR_NEEDED = "llm_repair_needed"


@dataclass
class SweepResult:
    """Everything one engine run did and found.

    Attributes:
        state: Terminal state.
        passes: Repair passes executed.
        repairs: Applied mutations in order.
        violations_before: Initial detect pass, bucketed.
        violations_after: Final detect pass, bucketed.
        goal_inference: Goal synthesis outcome.
        status_quo: Disconnected-option handling across passes.
        unreachable_factors: Factor reclassification across passes.
        edge_filter: Closed-world filtering across passes.
        caps: Cap enforcement across passes.
        factor_goal_splits: Factor -> goal edges rerouted.
        graph_delta: Node/edge counts before and after.
        duration_ms: Wall time.
    """

    state: SweepState = SweepState.PENDING
    passes: int = 0
    repairs: list[Repair] = field(default_factory=list)
    violations_before: BucketedViolations = field(default_factory=BucketedViolations)
    violations_after: BucketedViolations = field(default_factory=BucketedViolations)
    goal_inference: GoalInferenceResult = field(default_factory=GoalInferenceResult)
    status_quo: StatusQuoResult = field(default_factory=StatusQuoResult)
    unreachable_factors: UnreachableFactorResult = field(default_factory=UnreachableFactorResult)
    edge_filter: EdgeFilterResult = field(default_factory=lambda: EdgeFilterResult(mode="strict"))
    caps: CapResult = field(default_factory=CapResult)
    factor_goal_splits: int = 0
    graph_delta: dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def llm_repair_needed(self) -> bool:
        return self.state == SweepState.LLM_REPAIR_NEEDED

    @property
    def repair_codes(self) -> list[str]:
        return [r.code for r in self.repairs]

    def to_trace(self) -> dict[str, Any]:
        """Serialisable trace stored under ``repair_trace["deterministic_sweep"]``."""
        gi = self.goal_inference
        return {
            "sweep_ran": True,
            "sweep_version": SWEEP_VERSION,
            "state": self.state.value,
            "passes": self.passes,
            "bucket_summary": self.violations_before.summary(),
            "repairs_count": len(self.repairs),
            "violations_before": self.violations_before.codes(),
            "violations_after": self.violations_after.codes(),
            "remaining_bucket_c": self.violations_after.codes(Bucket.C),
            "llm_repair_needed": self.llm_repair_needed,
            "goal_inference": {
                "added": gi.added,
                "goal_id": gi.goal_id,
                "source": gi.source,
                "wired_outcomes": len(gi.wired_outcomes),
                "wired_risks": len(gi.wired_risks),
            },
            "status_quo": {
                "fixed": self.status_quo.fixed,
                "marked_droppable": self.status_quo.marked_droppable,
                "wired_options": list(self.status_quo.wired_options),
                "droppable_options": list(self.status_quo.droppable_options),
            },
            "unreachable_factors": {
                "reclassified": list(self.unreachable_factors.reclassified),
                "marked_droppable": list(self.unreachable_factors.marked_droppable),
            },
            "factor_goal_splits": self.factor_goal_splits,
            "edge_filter": {
                "mode": self.edge_filter.mode,
                "stripped": list(self.edge_filter.stripped),
                "flagged": list(self.edge_filter.flagged),
            },
            "caps": {
                "nodes_trimmed": list(self.caps.nodes_trimmed),
                "edges_trimmed": list(self.caps.edges_trimmed),
            },
            "graph_delta": dict(self.graph_delta),
            "duration_ms": self.duration_ms,
        }


def _merge_unique(target: list[str], values: list[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


class DeterministicRepairEngine:
    """Rule-based graph repair with violation bucketing.

    Attributes:
        validator: Produces the coded violations each detect pass buckets.
        max_nodes: Node cap (protected kinds exempt).
        max_edges: Edge cap.
        max_passes: Repair pass ceiling.
        edge_filter_mode: "strict" strips invalid patterns, "lenient" flags them.
    """

    def __init__(
        self,
        validator: Validator,
        *,
        max_nodes: int = 50,
        max_edges: int = 200,
        max_passes: int = DEFAULT_MAX_PASSES,
        edge_filter_mode: EdgeFilterMode = "strict",
    ) -> None:
        self.validator = validator
        self.max_nodes = max_nodes
        self.max_edges = max_edges
        self.max_passes = max_passes
        self.edge_filter_mode: EdgeFilterMode = edge_filter_mode

    @classmethod
    def from_config(cls, validator: Validator, config: RepairConfig) -> DeterministicRepairEngine:
        return cls(
            validator,
            max_nodes=config.max_nodes,
            max_edges=config.max_edges,
            max_passes=config.max_passes,
            edge_filter_mode=config.edge_filter_mode,
        )

    def detect(self, graph: Graph) -> list[ValidationIssue]:
        """Validator errors plus orphan findings the validator does not code."""
        issues = list(self.validator.validate(graph).errors)
        for node_id in find_orphan_outcomes(graph):
            issues.append(
                ValidationIssue(
                    "ORPHAN_OUTCOME",
                    f"'{node_id}' has no edge to a goal",
                    f"nodes[{node_id}]",
                    node_id=node_id,
                )
            )
        for node_id in find_orphan_factors(graph):
            issues.append(
                ValidationIssue(
                    "ORPHAN_FACTOR",
                    f"Factor '{node_id}' has no inbound causal edge",
                    f"nodes[{node_id}]",
                    node_id=node_id,
                )
            )
        return issues

    def run(self, graph: Graph, *, brief: str = "", explicit_goal: str | None = None) -> SweepResult:
        """Repair ``graph`` in place.

        Args:
            graph: Graph to repair; mutated.
            brief: Problem statement, used for goal inference.
            explicit_goal: Caller-supplied goal label, preferred over the brief.

        Returns:
            SweepResult describing every applied mutation.
        """
        started = time.perf_counter()
        node_ids_before = {n.id for n in graph.nodes}
        edges_before = len(graph.edges)

        result = SweepResult(edge_filter=EdgeFilterResult(mode=self.edge_filter_mode))
        result.violations_before = bucket_violations(self.detect(graph))
        current = result.violations_before

        while current.total and result.passes < self.max_passes:
            result.passes += 1
            applied = self._repair_pass(graph, brief, explicit_goal, result)
            result.repairs.extend(applied)
            current = bucket_violations(self.detect(graph))
            log.debug(
                "sweep_pass_complete",
                pass_number=result.passes,
                repairs=len(applied),
                remaining=current.total,
            )
            if not applied:
                break

        result.repairs.extend(self._normalise_identity(graph))
        result.violations_after = current
        result.state = SweepState.LLM_REPAIR_NEEDED if current.c else SweepState.STABLE

        node_ids_after = {n.id for n in graph.nodes}
        result.graph_delta = {
            "nodes_before": len(node_ids_before),
            "nodes_after": len(node_ids_after),
            "edges_before": edges_before,
            "edges_after": len(graph.edges),
            "nodes_added": sorted(node_ids_after - node_ids_before),
            "nodes_removed": sorted(node_ids_before - node_ids_after),
        }
        result.duration_ms = round((time.perf_counter() - started) * 1000, 3)

        log.info(
            "deterministic_sweep_complete",
            state=result.state.value,
            passes=result.passes,
            repairs=len(result.repairs),
            buckets=result.violations_before.summary(),
            remaining_c=current.codes(Bucket.C),
        )
        return result

    def _repair_pass(
        self,
        graph: Graph,
        brief: str,
        explicit_goal: str | None,
        result: SweepResult,
    ) -> list[Repair]:
        repairs: list[Repair] = []
        repairs.extend(strip_dangling(graph))
        repairs.extend(fix_numeric_fields(graph))
        repairs.extend(remove_forbidden_topology(graph))

        splits = split_factor_goal_edges(graph)
        result.factor_goal_splits += len(splits)
        repairs.extend(splits)

        filtered = filter_edges(graph, self.edge_filter_mode)
        _merge_unique(result.edge_filter.stripped, filtered.stripped)
        _merge_unique(result.edge_filter.flagged, filtered.flagged)
        repairs.extend(filtered.repairs)

        repairs.extend(canonicalise_structural_edges(graph))

        goal = ensure_goal(graph, brief, explicit_goal)
        if goal.added:
            result.goal_inference = goal
        repairs.extend(goal.repairs)

        repairs.extend(wire_orphan_outcomes(graph))
        repairs.extend(wire_orphan_factors(graph))

        status_quo = handle_status_quo_options(graph)
        _merge_unique(result.status_quo.wired_options, status_quo.wired_options)
        _merge_unique(result.status_quo.droppable_options, status_quo.droppable_options)
        repairs.extend(status_quo.repairs)

        unreachable = handle_unreachable_factors(graph)
        _merge_unique(result.unreachable_factors.reclassified, unreachable.reclassified)
        _merge_unique(result.unreachable_factors.marked_droppable, unreachable.marked_droppable)
        repairs.extend(unreachable.repairs)

        repairs.extend(fix_factor_categories(graph))
        repairs.extend(break_cycles(graph))

        caps = enforce_caps(graph, self.max_nodes, self.max_edges)
        _merge_unique(result.caps.nodes_trimmed, caps.nodes_trimmed)
        _merge_unique(result.caps.edges_trimmed, caps.edges_trimmed)
        repairs.extend(caps.repairs)
        return repairs

    def _normalise_identity(self, graph: Graph) -> list[Repair]:
        repairs = strip_dangling(graph)
        for edge_id in assign_edge_ids(graph):
            repairs.append(Repair("EDGE_ID_ASSIGNED", f"edges[{edge_id}]", "assigned id"))
        sort_edges(graph)
        return repairs
