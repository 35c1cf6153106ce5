"""Draft stage: one model call, shape gate, edge stash and confidence."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ceedraft.models.graph import GRAPH_VERSION, Graph
from ceedraft.observability.logging import get_logger
from ceedraft.pipeline.checkpoints import (
    POST_ADAPTER_NORMALISATION,
    POST_NORMALISATION,
    capture_checkpoint,
)
from ceedraft.pipeline.confidence import calc_confidence, decide_clarifier_status
from ceedraft.pipeline.deadline import call_with_deadline
from ceedraft.pipeline.errors import (
    ClientDisconnectError,
    CostLimitExceededError,
    DraftTimeoutError,
    GraphShapeError,
    PipelineError,
    map_exception,
)
from ceedraft.pipeline.stages.registry import pipeline_stage
from ceedraft.pipeline.stash import EdgeFieldStash
from ceedraft.providers.base import CallOpts, DraftGraphArgs, UpstreamTimeoutError
from ceedraft.providers.retry import call_with_retry

if TYPE_CHECKING:
    from ceedraft.pipeline.context import PipelineContext, StageRuntime
    from ceedraft.providers.base import DraftGraphResult

log = get_logger(__name__)

STAGE = "draft"


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token."""
    return math.ceil(len(text) / 4)


def is_body_timeout(exc: BaseException) -> bool:
    """Only a mid-call timeout is worth another attempt."""
    return isinstance(exc, UpstreamTimeoutError) and exc.phase == "body"


def shape_error(raw: Any) -> str | None:
    """Return why ``raw`` is not a ``{nodes: [], edges: []}`` object, or None."""
    if not isinstance(raw, dict):
        return f"graph is {type(raw).__name__}, expected object"
    for key in ("nodes", "edges"):
        if not isinstance(raw.get(key), list):
            return f"'{key}' is not an array"
    return None


def normalise_draft(graph: Graph) -> None:
    """Stamp the schema version and mark model-authored edges."""
    graph.meta["version"] = GRAPH_VERSION
    for edge in graph.edges:
        if edge.origin is None:
            edge.origin = "model"
        if edge.provenance_source is None:
            edge.provenance_source = "model"


async def _call_adapter(ctx: PipelineContext, runtime: StageRuntime) -> DraftGraphResult:
    adapter = runtime.adapter
    if adapter is None:
        raise PipelineError(STAGE, "no draft adapter configured")
    timeout_ms = runtime.config.budget.draft_timeout_ms
    request = ctx.request
    args = DraftGraphArgs(
        brief=request.brief,
        previous_graph=request.previous_graph,
        flags=dict(request.flags),
        seed=request.seed,
    )
    attempts = 0

    async def attempt(number: int) -> DraftGraphResult:
        nonlocal attempts
        attempts = number
        opts = CallOpts(
            request_id=ctx.request_id,
            timeout_ms=timeout_ms,
            abort_event=ctx.abort_event,
        )
        return await call_with_deadline(
            lambda: adapter.draft_graph(args, opts),
            timeout_ms=timeout_ms,
            abort_event=ctx.abort_event,
            provider=adapter.provider,
            stage=STAGE,
            attempt=number,
        )

    try:
        return await call_with_retry(attempt, runtime.retry, is_body_timeout, label="draft_graph")
    except UpstreamTimeoutError as e:
        if e.phase == "pre_aborted":
            raise ClientDisconnectError(STAGE, attempts) from e
        raise DraftTimeoutError(STAGE, attempts, timeout_ms) from e


@pipeline_stage(
    name=STAGE,
    llm_bound=True,
    reads=("request", "abort_event"),
    writes=(
        "raw_graph",
        "graph",
        "edge_field_stash",
        "rationales",
        "usage",
        "llm_meta",
        "confidence",
        "clarifier_status",
        "checkpoints",
        "early_return",
    ),
)
async def stage_draft(ctx: PipelineContext, runtime: StageRuntime) -> None:
    """Draft a graph and prepare it for repair.

    Raises:
        ClientDisconnectError: The client was gone before or during the call.
        DraftTimeoutError: Every attempt timed out.
        UpstreamError: Any other adapter failure, unchanged.
    """
    config = runtime.config
    estimated = estimate_tokens(ctx.request.brief)
    if estimated > config.cost.max_brief_tokens:
        log.warning("cost_guard_rejected", estimated_tokens=estimated)
        ctx.early_return = map_exception(
            CostLimitExceededError(STAGE, estimated, config.cost.max_brief_tokens),
            ctx.request_id,
        )
        return

    result = await _call_adapter(ctx, runtime)
    ctx.rationales = list(result.rationales)
    ctx.add_usage(result.usage)
    ctx.llm_meta = dict(result.meta)
    ingest_graph(ctx, runtime, result.graph)


def ingest_graph(ctx: PipelineContext, runtime: StageRuntime, raw: Any) -> None:
    """Gate, stash, type and score a drafted graph payload.

    Sets ``early_return`` instead of raising when the payload is malformed.
    """
    config = runtime.config
    ctx.raw_graph = raw
    reason = shape_error(raw)
    if reason is not None:
        log.warning("draft_shape_invalid", reason=reason)
        ctx.early_return = map_exception(
            GraphShapeError(STAGE, "malformed_graph", reason), ctx.request_id
        )
        return

    ctx.edge_field_stash = EdgeFieldStash.from_raw_edges(raw["edges"])
    if config.checkpoints.enabled:
        ctx.checkpoints.append(
            capture_checkpoint(
                POST_ADAPTER_NORMALISATION,
                raw,
                sample_size=config.checkpoints.sample_size,
                detect_nested=True,
            )
        )

    try:
        graph = Graph.model_validate(raw)
    except ValidationError as e:
        log.warning("draft_schema_invalid", errors=e.error_count())
        ctx.early_return = map_exception(
            GraphShapeError(STAGE, "invalid_graph_schema", str(e.errors()[0]["msg"])),
            ctx.request_id,
        )
        return
    normalise_draft(graph)
    ctx.graph = graph
    if config.checkpoints.enabled:
        ctx.checkpoints.append(
            capture_checkpoint(
                POST_NORMALISATION,
                graph.to_payload(),
                sample_size=config.checkpoints.sample_size,
            )
        )

    ctx.confidence = calc_confidence(ctx.request.brief, raw)
    ctx.clarifier_status = decide_clarifier_status(
        ctx.confidence, ctx.request.clarification_round, config.confidence
    )
    log.info(
        "draft_complete",
        nodes=len(graph.nodes),
        edges=len(graph.edges),
        confidence=ctx.confidence,
        clarifier_status=ctx.clarifier_status,
    )
