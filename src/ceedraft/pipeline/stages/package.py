"""Package stage: summarise the run without touching the graph."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ceedraft.pipeline.provenance import assemble_provenance
from ceedraft.pipeline.stages.registry import pipeline_stage

if TYPE_CHECKING:
    from ceedraft.pipeline.context import PipelineContext, StageRuntime
    from ceedraft.repair.sweep import SweepResult


def status_quo_action(sweep: SweepResult | None) -> str:
    """``wired``, ``droppable`` or ``none``; wiring wins when both fired."""
    if sweep is None:
        return "none"
    if sweep.status_quo.fixed:
        return "wired"
    if sweep.status_quo.marked_droppable:
        return "droppable"
    return "none"


def build_repair_summary(ctx: PipelineContext) -> dict[str, Any]:
    sweep = ctx.sweep
    summary: dict[str, Any] = {
        "deterministic_repairs_count": len(ctx.deterministic_repairs),
        "deterministic_repairs": list(dict.fromkeys(ctx.deterministic_repairs)),
        "status_quo_action": status_quo_action(sweep),
        "llm_repair_needed": sweep.llm_repair_needed if sweep is not None else False,
        "skip_repair_due_to_budget": ctx.skip_repair_due_to_budget,
    }
    if ctx.repair_timeout_ms is not None:
        summary["repair_timeout_ms"] = round(ctx.repair_timeout_ms)
    if sweep is not None:
        summary["remaining_violations"] = sweep.violations_after.codes()
        summary["graph_delta"] = dict(sweep.graph_delta)
    return summary


@pipeline_stage(
    name="package",
    depends_on=["validate"],
    reads=(
        "graph",
        "sweep",
        "deterministic_repairs",
        "repair_trace",
        "threshold_sweep_trace",
        "structural_warnings",
        "llm_meta",
        "selection",
        "usage",
        "rationales",
    ),
    writes=("payload",),
)
async def stage_package(ctx: PipelineContext, runtime: StageRuntime) -> None:
    threshold = ctx.threshold_sweep_trace
    ctx.payload = {
        "repair_summary": build_repair_summary(ctx),
        "repair_trace": dict(ctx.repair_trace),
        "threshold_sweep": threshold.to_dict() if threshold is not None else {"ran": False},
        "structural_warnings": [dict(w) for w in ctx.structural_warnings],
        "provenance": assemble_provenance(ctx.llm_meta, ctx.selection).to_dict(),
        "usage": {
            "input_tokens": ctx.usage.input_tokens,
            "output_tokens": ctx.usage.output_tokens,
            "cache_read_input_tokens": ctx.usage.cache_read_input_tokens,
        },
        "rationales": list(ctx.rationales),
    }
