"""Repair stage: deterministic sweep, then an optional model-assisted pass.

The deterministic sweep always runs. A model-assisted repair is attempted
only when the sweep leaves bucket C violations, the feature is enabled and
the request budget leaves room for the call. Its failure degrades to the
deterministic graph plus a warning.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ceedraft.graph.validator import format_repair_feedback
from ceedraft.models.graph import Graph
from ceedraft.observability.logging import get_logger
from ceedraft.pipeline.checkpoints import POST_REPAIR, capture_checkpoint
from ceedraft.pipeline.deadline import call_with_deadline
from ceedraft.pipeline.errors import ClientDisconnectError, PipelineError
from ceedraft.pipeline.stages.draft import normalise_draft, shape_error
from ceedraft.pipeline.stages.registry import pipeline_stage
from ceedraft.providers.base import CallOpts, UpstreamError, UpstreamTimeoutError

if TYPE_CHECKING:
    from ceedraft.pipeline.context import PipelineContext, StageRuntime
    from ceedraft.repair.sweep import SweepResult

log = get_logger(__name__)

STAGE = "repair"

LLM_REPAIR_FAILED = "LLM_REPAIR_FAILED"
LLM_REPAIR_SKIPPED = "LLM_REPAIR_SKIPPED"


def _record_sweep(ctx: PipelineContext, sweep: SweepResult, trace_key: str) -> None:
    ctx.sweep = sweep
    ctx.deterministic_repairs.extend(sweep.repair_codes)
    ctx.repair_trace[trace_key] = sweep.to_trace()


async def _llm_repair(ctx: PipelineContext, runtime: StageRuntime, timeout_ms: float) -> None:
    graph = ctx.graph
    sweep = ctx.sweep
    if graph is None or sweep is None:
        return
    adapter = runtime.adapter
    repair_graph = getattr(adapter, "repair_graph", None)
    if adapter is None or repair_graph is None:
        return
    feedback = format_repair_feedback(sweep.violations_after.c)
    opts = CallOpts(
        request_id=ctx.request_id,
        timeout_ms=int(timeout_ms),
        abort_event=ctx.abort_event,
    )
    payload = graph.to_payload()
    trace: dict[str, Any] = {"called": True, "timeout_ms": int(timeout_ms), "accepted": False}
    ctx.repair_trace["llm_repair"] = trace

    try:
        result = await call_with_deadline(
            lambda: repair_graph(payload, feedback, opts),
            timeout_ms=timeout_ms,
            abort_event=ctx.abort_event,
            provider=adapter.provider,
            stage=STAGE,
        )
    except UpstreamTimeoutError as e:
        if e.phase == "pre_aborted":
            raise ClientDisconnectError(STAGE) from e
        ctx.warn(LLM_REPAIR_FAILED, "Model-assisted repair timed out", error=str(e))
        log.warning("llm_repair_failed", reason="timeout")
        return
    except ClientDisconnectError:
        raise
    except UpstreamError as e:
        ctx.warn(LLM_REPAIR_FAILED, "Model-assisted repair failed", error=str(e))
        log.warning("llm_repair_failed", reason="upstream", error=str(e))
        return
    except Exception as e:
        ctx.warn(LLM_REPAIR_FAILED, "Model-assisted repair failed", error=str(e))
        log.warning(
            "llm_repair_failed", reason="unexpected", error_type=type(e).__name__, error=str(e)
        )
        return

    ctx.add_usage(result.usage)
    reason = shape_error(result.graph)
    if reason is not None:
        ctx.warn(LLM_REPAIR_FAILED, "Model-assisted repair returned a malformed graph")
        log.warning("llm_repair_failed", reason="shape", detail=reason)
        return
    try:
        repaired = Graph.model_validate(result.graph)
    except ValidationError as e:
        ctx.warn(LLM_REPAIR_FAILED, "Model-assisted repair returned an invalid graph")
        log.warning("llm_repair_failed", reason="schema", errors=e.error_count())
        return

    normalise_draft(repaired)
    resweep = runtime.engine.run(
        repaired, brief=ctx.request.brief, explicit_goal=ctx.request.explicit_goal
    )
    before = len(sweep.violations_after.c)
    after = len(resweep.violations_after.c)
    trace["remaining_bucket_c"] = resweep.violations_after.codes()
    if after > before:
        ctx.warn(LLM_REPAIR_FAILED, "Model-assisted repair made the graph worse")
        log.warning("llm_repair_rejected", before=before, after=after)
        return
    trace["accepted"] = True
    ctx.graph = repaired
    _record_sweep(ctx, resweep, "post_llm_sweep")
    log.info("llm_repair_accepted", remaining_bucket_c=after)


@pipeline_stage(
    name=STAGE,
    depends_on=["draft"],
    llm_bound=True,
    reads=("request", "graph", "budget", "abort_event"),
    writes=(
        "graph",
        "sweep",
        "deterministic_repairs",
        "repair_trace",
        "skip_repair_due_to_budget",
        "repair_timeout_ms",
        "structural_warnings",
        "checkpoints",
    ),
)
async def stage_repair(ctx: PipelineContext, runtime: StageRuntime) -> None:
    """Run the deterministic sweep and escalate to the model when needed."""
    if ctx.graph is None:
        raise PipelineError(STAGE, "no graph to repair")
    if not ctx.graph.nodes:
        ctx.repair_trace["deterministic_sweep"] = {"sweep_ran": False, "reason": "empty_graph"}
        return

    sweep = runtime.engine.run(
        ctx.graph, brief=ctx.request.brief, explicit_goal=ctx.request.explicit_goal
    )
    _record_sweep(ctx, sweep, "deterministic_sweep")

    budget = ctx.budget.repair_budget()
    ctx.skip_repair_due_to_budget = budget.skip
    ctx.repair_timeout_ms = max(0.0, budget.effective_timeout_ms)

    if sweep.llm_repair_needed:
        remaining = sweep.violations_after.codes()
        if not runtime.config.repair.llm_repair_enabled or runtime.adapter is None:
            ctx.warn(
                LLM_REPAIR_SKIPPED,
                "Model-assisted repair is unavailable",
                remaining=remaining,
            )
        elif getattr(runtime.adapter, "repair_graph", None) is None:
            log.info("llm_repair_skipped_unsupported", provider=runtime.adapter.provider)
            ctx.warn(
                LLM_REPAIR_SKIPPED,
                "The model adapter does not support repair",
                reason="unsupported",
                remaining=remaining,
            )
        elif budget.skip:
            log.info(
                "llm_repair_skipped_budget",
                elapsed_ms=round(budget.elapsed_ms),
                remaining_ms=round(budget.remaining_ms),
            )
            ctx.warn(
                LLM_REPAIR_SKIPPED,
                "Not enough request budget left for model-assisted repair",
                remaining=remaining,
            )
        else:
            await _llm_repair(ctx, runtime, budget.effective_timeout_ms)

    if runtime.config.checkpoints.enabled and ctx.graph is not None:
        ctx.checkpoints.append(
            capture_checkpoint(
                POST_REPAIR,
                ctx.graph.to_payload(),
                sample_size=runtime.config.checkpoints.sample_size,
            )
        )
