"""Pipeline orchestrator for stage execution.

Runs the registered stages in order against one ``PipelineContext`` under
one request budget, then hands the context to the finalizer. Every failure
is mapped to the error envelope; nothing escapes ``run``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from ceedraft.graph.validator import GraphValidator
from ceedraft.observability.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
)
from ceedraft.pipeline.budget import RequestBudget
from ceedraft.pipeline.context import (
    PipelineContext,
    StageRuntime,
    generate_request_id,
)
from ceedraft.pipeline.errors import PipelineError, map_exception
from ceedraft.pipeline.finalizer import finalize
from ceedraft.pipeline.stages import NoopEnricher, get_registry
from ceedraft.pipeline.stages.draft import STAGE as DRAFT_STAGE
from ceedraft.pipeline.stages.draft import ingest_graph
from ceedraft.providers.cache import AdapterCache, CachingValidator
from ceedraft.providers.factory import create_draft_adapter
from ceedraft.providers.retry import RetryPolicy
from ceedraft.providers.selection import ModelTask, select_model
from ceedraft.repair.sweep import DeterministicRepairEngine

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable

    from ceedraft.graph.validation_types import Validator
    from ceedraft.pipeline.config import PipelineConfig
    from ceedraft.pipeline.context import DraftRequest
    from ceedraft.pipeline.errors import PipelineResponse
    from ceedraft.pipeline.stages import Enricher, StageRegistry
    from ceedraft.providers.base import DraftAdapter

log = get_logger(__name__)


class PipelineOrchestrator:
    """Runs drafting requests end to end.

    Caches are injected so that tests and embedding services control their
    lifetime; ``reset_caches()`` clears both.

    Args:
        config: Effective pipeline configuration.
        adapter_factory: Builds an adapter for ``(provider, model)``.
        validator: Structural validator; defaults to ``GraphValidator``.
        enricher: Enrichment collaborator; defaults to ``NoopEnricher``.
        adapter_cache: Adapter instances keyed by ``(provider, model)``.
        validation_cache: Validation results keyed by graph content hash.
        retry_policy: Backoff for model calls.
        clock: Monotonic clock in seconds for the request budget.
        registry: Stage registry; defaults to the module registry.

    Raises:
        ValueError: If the stage registry is invalid.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        adapter_factory: Callable[[str, str], DraftAdapter] = create_draft_adapter,
        validator: Validator | None = None,
        enricher: Enricher | None = None,
        adapter_cache: AdapterCache | None = None,
        validation_cache: CachingValidator | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        registry: StageRegistry | None = None,
    ) -> None:
        self.config = config
        self._adapter_factory = adapter_factory
        base_validator = validator or GraphValidator(
            max_nodes=config.repair.max_nodes, max_edges=config.repair.max_edges
        )
        self.adapter_cache = adapter_cache or AdapterCache.from_config(config.cache)
        self.validation_cache = validation_cache or CachingValidator(
            base_validator, config.cache.max_size, config.cache.ttl_seconds
        )
        self._engine = DeterministicRepairEngine.from_config(base_validator, config.repair)
        self._enricher = enricher or NoopEnricher()
        self._retry = retry_policy or RetryPolicy.from_config(config.retry)
        self._clock = clock
        self._registry = registry or get_registry()

        errors = self._registry.validate()
        if errors:
            raise ValueError("Invalid stage registry: " + "; ".join(errors))

    def reset_caches(self) -> None:
        """Drop cached adapters and validation results."""
        self.adapter_cache.clear()
        self.validation_cache.clear()

    async def _run_stage(
        self, name: str, ctx: PipelineContext, runtime: StageRuntime
    ) -> None:
        meta = self._registry.get_meta(name)
        fn = self._registry.get_function(name)
        if meta is None or fn is None:
            raise PipelineError(name, "stage is not registered")
        if meta.llm_bound:
            ctx.budget.ensure_within(name)

        start_time = time.perf_counter()
        log.info("stage_start", stage=name)
        await fn(ctx, runtime)
        duration_ms = round((time.perf_counter() - start_time) * 1000, 3)
        ctx.stage_timings[name] = duration_ms
        log.info("stage_complete", stage=name, duration_ms=duration_ms)

    async def run(
        self,
        request: DraftRequest,
        abort_event: asyncio.Event | None = None,
    ) -> PipelineResponse:
        """Run one request through every stage and the finalizer.

        Args:
            request: Caller input.
            abort_event: Set by the transport when the client disconnects.

        Returns:
            Success or error envelope with its HTTP status.
        """
        request_id = request.request_id or generate_request_id()
        bind_request_context(request_id)
        start_time = time.perf_counter()
        ctx = PipelineContext(
            request_id=request_id,
            request=request,
            budget=RequestBudget(self.config.budget, clock=self._clock),
            abort_event=abort_event,
        )
        try:
            selection = select_model(
                ModelTask.DRAFT, self.config.models, override=request.model_override
            )
            ctx.selection = selection
            adapter = self.adapter_cache.get_or_create(
                selection.provider, selection.model, self._adapter_factory
            )
            runtime = StageRuntime(
                config=self.config,
                adapter=adapter,
                engine=self._engine,
                validator=self.validation_cache,
                enricher=self._enricher,
                retry=self._retry,
            )
            for name in self._registry.execution_order():
                if ctx.early_return is not None:
                    log.info("pipeline_early_return", skipped_from=name)
                    break
                await self._run_stage(name, ctx, runtime)
            response = finalize(
                ctx,
                self.config,
                engine={"provider": adapter.provider, "model": adapter.model},
            )
        except Exception as e:
            response = map_exception(e, request_id)
        finally:
            log.info(
                "pipeline_complete",
                duration_ms=round((time.perf_counter() - start_time) * 1000, 3),
                stages=list(ctx.stage_timings),
            )
            clear_request_context()
        return response

    async def run_graph(self, request: DraftRequest, graph_payload: Any) -> PipelineResponse:
        """Run an existing graph through every stage after drafting.

        No model is called: model-assisted repair is reported as skipped.

        Args:
            request: Caller input; ``brief`` still drives goal inference.
            graph_payload: Graph as a ``{nodes, edges}`` payload.

        Returns:
            Success or error envelope with its HTTP status.
        """
        request_id = request.request_id or generate_request_id()
        bind_request_context(request_id)
        ctx = PipelineContext(
            request_id=request_id,
            request=request,
            budget=RequestBudget(self.config.budget, clock=self._clock),
        )
        runtime = StageRuntime(
            config=self.config,
            adapter=None,
            engine=self._engine,
            validator=self.validation_cache,
            enricher=self._enricher,
            retry=self._retry,
        )
        try:
            ingest_graph(ctx, runtime, graph_payload)
            for name in self._registry.execution_order():
                if ctx.early_return is not None:
                    break
                if name == DRAFT_STAGE:
                    continue
                await self._run_stage(name, ctx, runtime)
            response = finalize(ctx, self.config, engine={"provider": "none", "model": "none"})
        except Exception as e:
            response = map_exception(e, request_id)
        finally:
            clear_request_context()
        return response
