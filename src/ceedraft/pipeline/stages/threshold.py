"""Threshold stage: strip goal thresholds the brief does not support."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ceedraft.pipeline.stages.registry import pipeline_stage
from ceedraft.repair.threshold import POSSIBLY_INFERRED, run_threshold_sweep

if TYPE_CHECKING:
    from ceedraft.pipeline.context import PipelineContext, StageRuntime


@pipeline_stage(
    name="threshold_sweep",
    depends_on=["repair"],
    reads=("graph",),
    writes=("graph", "threshold_sweep_trace", "deterministic_repairs", "structural_warnings"),
)
async def stage_threshold_sweep(ctx: PipelineContext, runtime: StageRuntime) -> None:
    trace = run_threshold_sweep(ctx.graph)
    ctx.threshold_sweep_trace = trace
    ctx.deterministic_repairs.extend(r.code for r in trace.repairs)
    if POSSIBLY_INFERRED in trace.codes:
        ctx.warn(
            POSSIBLY_INFERRED,
            "A goal threshold may have been inferred rather than stated",
        )
