"""Enrichment stage.

Enrichment (bias findings, extra options, evidence and sensitivity
suggestions) is provided by an external collaborator. The default
``NoopEnricher`` attaches nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from ceedraft.observability.logging import get_logger
from ceedraft.pipeline.context import Enrichment
from ceedraft.pipeline.stages.registry import pipeline_stage

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph
    from ceedraft.pipeline.context import PipelineContext, StageRuntime

log = get_logger(__name__)


class Enricher(Protocol):
    """Attaches advisory lists to a repaired graph.

    Implementations may add synthetic edges; those must carry
    ``origin="enrichment"`` and ``provenance_source="synthetic"``.
    """

    async def enrich(self, graph: Graph, brief: str) -> Enrichment: ...


class NoopEnricher:
    """Enricher that adds nothing."""

    async def enrich(self, graph: Graph, brief: str) -> Enrichment:
        return Enrichment()


@pipeline_stage(
    name="enrich",
    depends_on=["threshold_sweep"],
    reads=("graph", "request"),
    writes=("enrichment",),
)
async def stage_enrich(ctx: PipelineContext, runtime: StageRuntime) -> None:
    if ctx.graph is None or not ctx.graph.nodes:
        return
    ctx.enrichment = await runtime.enricher.enrich(ctx.graph, ctx.request.brief)
    log.debug(
        "enrichment_complete",
        bias_findings=len(ctx.enrichment.bias_findings),
        options=len(ctx.enrichment.options),
    )
