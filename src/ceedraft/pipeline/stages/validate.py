"""Validation stage: stabilise identity, restore drafted fields, validate."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ceedraft.graph.identity import assign_edge_ids, sort_edges, strip_dangling_edges
from ceedraft.observability.logging import get_logger
from ceedraft.pipeline.checkpoints import POST_STABILISATION, capture_checkpoint
from ceedraft.pipeline.stages.registry import pipeline_stage
from ceedraft.repair.caps import enforce_caps

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph
    from ceedraft.pipeline.context import PipelineContext, StageRuntime
    from ceedraft.pipeline.stash import EdgeFieldStash

log = get_logger(__name__)

DEGENERACY_CODES = frozenset({"UNIFORM_STRENGTHS", "UNIFORM_DIRECTION"})


def restore_edge_fields(graph: Graph, stash: EdgeFieldStash) -> list[str]:
    """Fill numeric fields that went missing since drafting.

    Only empty fields are filled, and synthetic edges are left alone.

    Returns:
        IDs (or ``from::to`` keys) of edges that had a field restored.
    """
    restored: list[str] = []
    for edge in graph.edges:
        if edge.is_synthetic:
            continue
        fields = stash.lookup(edge.id, edge.pair_key)
        if fields is None:
            continue
        changed = False
        if edge.strength_mean is None and fields.strength_mean is not None:
            edge.strength_mean = fields.strength_mean
            changed = True
        if edge.strength_std is None and fields.strength_std is not None:
            edge.strength_std = fields.strength_std
            changed = True
        if edge.belief_exists is None and fields.belief_exists is not None:
            edge.belief_exists = fields.belief_exists
            changed = True
        if edge.effect_direction is None and fields.effect_direction is not None:
            edge.effect_direction = fields.effect_direction  # type: ignore[assignment]
            changed = True
        if changed:
            restored.append(edge.id or edge.pair_key)
    return restored


@pipeline_stage(
    name="validate",
    depends_on=["enrich"],
    reads=("graph", "edge_field_stash"),
    writes=(
        "graph",
        "deterministic_repairs",
        "repair_trace",
        "validation_issues",
        "structural_warnings",
        "checkpoints",
    ),
)
async def stage_validate(ctx: PipelineContext, runtime: StageRuntime) -> None:
    graph = ctx.graph
    if graph is None or not graph.nodes:
        return
    config = runtime.config

    dropped = strip_dangling_edges(graph)
    caps = enforce_caps(graph, config.repair.max_nodes, config.repair.max_edges)
    ctx.deterministic_repairs.extend(r.code for r in caps.repairs)
    if ctx.edge_field_stash is not None:
        restored = restore_edge_fields(graph, ctx.edge_field_stash)
        if restored:
            ctx.repair_trace["edge_field_restoration"] = {"restored": restored}
    assign_edge_ids(graph)
    sort_edges(graph)

    result = runtime.validator.validate(graph)
    ctx.validation_issues = [*result.errors, *result.warnings]
    for issue in result.warnings:
        if issue.code in DEGENERACY_CODES:
            ctx.warn(issue.code, issue.message)

    log.info(
        "validation_complete",
        valid=result.valid,
        errors=len(result.errors),
        warnings=len(result.warnings),
        dangling_dropped=len(dropped),
    )

    if config.checkpoints.enabled:
        ctx.checkpoints.append(
            capture_checkpoint(
                POST_STABILISATION,
                graph.to_payload(),
                sample_size=config.checkpoints.sample_size,
            )
        )
