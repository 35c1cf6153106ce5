"""Acceptance gate and response envelope.

The gate runs after every stage, independent of per-stage errors:
an empty graph and a graph whose decision is cut off from both goal and
options are rejected with ``CEE_GRAPH_INVALID``. Anything else is wrapped
in the success envelope.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ceedraft.graph.detectors import check_connected_minimum_structure
from ceedraft.graph.identity import strip_dangling_edges
from ceedraft.observability.logging import get_logger
from ceedraft.pipeline.checkpoints import (
    PRE_BOUNDARY,
    apply_checkpoint_size_guard,
    capture_checkpoint,
    serialized_size,
)
from ceedraft.pipeline.errors import ErrorCode, PipelineResponse, build_error_response
from ceedraft.pipeline.quality import compute_quality
from ceedraft.pipeline.stages.validate import DEGENERACY_CODES

if TYPE_CHECKING:
    from ceedraft.pipeline.config import PipelineConfig
    from ceedraft.pipeline.context import PipelineContext

log = get_logger(__name__)

EMPTY_GRAPH_RECOVERY = [
    "Describe the decision, the options being compared and the goal in the brief.",
    "Retry the request; drafting is non-deterministic.",
]
INCOMPLETE_STRUCTURE_RECOVERY = [
    "Name at least one decision, two options and a goal in the brief.",
    "Check that the options are alternatives for the same decision.",
]


def cap_list(items: list[Any], limit: int) -> tuple[list[Any], bool]:
    """Truncate ``items`` to ``limit``; report whether anything was cut."""
    return list(items[:limit]), len(items) > limit


def _graph_invalid(
    ctx: PipelineContext, reason: str, message: str, **details: Any
) -> PipelineResponse:
    log.warning("finalize_rejected", reason=reason)
    return build_error_response(
        ErrorCode.GRAPH_INVALID,
        message,
        status_code=400,
        retryable=False,
        details={"reason": reason, "request_id": ctx.request_id, **details},
    )


def finalize(
    ctx: PipelineContext,
    config: PipelineConfig,
    engine: dict[str, str] | None = None,
) -> PipelineResponse:
    """Build the caller-facing response for one request.

    Args:
        ctx: Context after the last stage ran.
        config: Effective pipeline configuration.
        engine: ``{provider, model}`` that drafted the graph.

    Returns:
        The early-return response if a stage set one, otherwise an error
        or success envelope.
    """
    if ctx.early_return is not None:
        return ctx.early_return

    graph = ctx.graph
    if graph is None or not graph.nodes:
        return _graph_invalid(
            ctx,
            "empty_graph",
            "The drafted graph has no nodes",
            node_count=0,
            edge_count=len(graph.edges) if graph is not None else 0,
            recovery=EMPTY_GRAPH_RECOVERY,
        )

    diagnostic = check_connected_minimum_structure(graph)
    if not diagnostic.passed:
        return _graph_invalid(
            ctx,
            "incomplete_structure",
            "The graph does not connect a decision to both a goal and its options",
            node_count=len(graph.nodes),
            edge_count=len(graph.edges),
            missing_kinds=diagnostic.missing_kinds,
            recovery=INCOMPLETE_STRUCTURE_RECOVERY,
        )

    emitted = graph.model_copy(deep=True)
    strip_dangling_edges(emitted)
    graph_payload = emitted.to_payload()

    checkpoints_block: dict[str, Any] | None = None
    if config.checkpoints.enabled:
        ctx.checkpoints.append(
            capture_checkpoint(
                PRE_BOUNDARY, graph_payload, sample_size=config.checkpoints.sample_size
            )
        )
        truncated = apply_checkpoint_size_guard(ctx.checkpoints, config.checkpoints.max_bytes)
        checkpoints_block = {
            "checkpoints": [c.to_dict() for c in ctx.checkpoints],
            "meta": {
                "count": len(ctx.checkpoints),
                "samples_truncated": truncated,
                "bytes": serialized_size(ctx.checkpoints),
                "max_bytes": config.checkpoints.max_bytes,
            },
        }

    payload = ctx.payload or {}
    errors = [i for i in ctx.validation_issues if i.severity == "error"]
    degeneracy = [i for i in ctx.validation_issues if i.code in DEGENERACY_CODES]
    quality = compute_quality(ctx.confidence, len(errors), len(degeneracy))

    caps = config.response_caps.as_dict()
    enrichment = {
        "bias_findings": ctx.enrichment.bias_findings,
        "options": ctx.enrichment.options,
        "evidence_suggestions": ctx.enrichment.evidence_suggestions,
        "sensitivity_suggestions": ctx.enrichment.sensitivity_suggestions,
    }
    response_limits: dict[str, Any] = {}
    capped: dict[str, list[Any]] = {}
    for name, items in enrichment.items():
        kept, was_truncated = cap_list(items, caps[name])
        capped[name] = kept
        response_limits[f"{name}_max"] = caps[name]
        response_limits[f"{name}_truncated"] = was_truncated

    pipeline_trace: dict[str, Any] = {
        "provenance": payload.get("provenance", {}),
        "threshold_sweep": payload.get("threshold_sweep", {"ran": False}),
        "repair_summary": payload.get("repair_summary", {}),
        "repair_trace": payload.get("repair_trace", {}),
        "stage_timings": dict(ctx.stage_timings),
    }
    if checkpoints_block is not None:
        pipeline_trace["checkpoints"] = checkpoints_block["checkpoints"]
        pipeline_trace["checkpoints_meta"] = checkpoints_block["meta"]

    body: dict[str, Any] = {
        "graph": graph_payload,
        "trace": {
            "request_id": ctx.request_id,
            "engine": dict(engine or {}),
            "pipeline": pipeline_trace,
            "usage": payload.get("usage", {}),
        },
        "quality": quality.to_dict(),
        "response_limits": response_limits,
        **capped,
        "confidence": ctx.confidence,
        "clarifier_status": ctx.clarifier_status,
        "rationales": payload.get("rationales", []),
    }
    if ctx.validation_issues:
        body["validation_issues"] = [i.to_dict() for i in ctx.validation_issues]
    warnings = payload.get("structural_warnings", [])
    if warnings:
        body["structural_warnings"] = warnings

    log.info(
        "finalize_complete",
        nodes=len(emitted.nodes),
        edges=len(emitted.edges),
        quality=quality.overall,
    )
    return PipelineResponse(status_code=200, body=body)
