"""Typed per-request state and the services stages run against.

A ``PipelineContext`` is created by the orchestrator at request start,
handed to each stage in turn and discarded once the response is built.
Stages declare the fields they read and write in their registry entry.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ceedraft.providers.base import Usage

if TYPE_CHECKING:
    import asyncio

    from ceedraft.graph.validation_types import ValidationIssue, Validator
    from ceedraft.models.graph import Graph
    from ceedraft.pipeline.budget import RequestBudget
    from ceedraft.pipeline.checkpoints import Checkpoint
    from ceedraft.pipeline.config import PipelineConfig
    from ceedraft.pipeline.confidence import ClarifierStatus
    from ceedraft.pipeline.errors import PipelineResponse
    from ceedraft.pipeline.stages.enrich import Enricher
    from ceedraft.pipeline.stash import EdgeFieldStash
    from ceedraft.providers.base import DraftAdapter
    from ceedraft.providers.cache import CachingValidator
    from ceedraft.providers.retry import RetryPolicy
    from ceedraft.providers.selection import ModelSelection
    from ceedraft.repair.sweep import DeterministicRepairEngine, SweepResult
    from ceedraft.repair.threshold import ThresholdSweepTrace


def generate_request_id() -> str:
    """Return a new opaque request ID."""
    return uuid.uuid4().hex


@dataclass
class DraftRequest:
    """Caller input for one drafting request.

    Attributes:
        brief: Free-text problem statement.
        previous_graph: Prior graph payload when refining.
        flags: Schema and feature flags forwarded to the adapter.
        explicit_goal: Goal label supplied by the caller.
        clarification_round: Clarification rounds already spent.
        model_override: ``provider/model`` requested by the caller.
        seed: Optional sampling seed.
        request_id: Caller-supplied correlation ID.
    """

    brief: str
    previous_graph: dict[str, Any] | None = None
    flags: dict[str, Any] = field(default_factory=dict)
    explicit_goal: str | None = None
    clarification_round: int = 0
    model_override: str | None = None
    seed: int | None = None
    request_id: str | None = None


@dataclass
class Enrichment:
    """Optional lists attached by the enrichment collaborator."""

    bias_findings: list[dict[str, Any]] = field(default_factory=list)
    options: list[dict[str, Any]] = field(default_factory=list)
    evidence_suggestions: list[dict[str, Any]] = field(default_factory=list)
    sensitivity_suggestions: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PipelineContext:
    """Mutable state for one request.

    Attributes:
        request_id: Correlation ID.
        request: Caller input.
        budget: Request-wide wall-clock budget.
        selection: Resolved draft model.
        abort_event: Set when the client disconnects.
        raw_graph: Graph payload exactly as the adapter returned it.
        graph: Typed graph, mutated by repair stages.
        edge_field_stash: Drafted edge fields, frozen.
        rationales: Model rationales from the draft call.
        usage: Token accounting across model calls.
        llm_meta: Adapter metadata from the draft call.
        confidence: Clarification confidence in [0, 1).
        clarifier_status: Banded confidence.
        deterministic_repairs: Applied repair codes, in order.
        repair_trace: Traces keyed by sweep name.
        sweep: Latest deterministic sweep result.
        skip_repair_due_to_budget: Model-assisted repair was skipped for time.
        repair_timeout_ms: Timeout granted to the model-assisted repair call.
        threshold_sweep_trace: Goal threshold sweep summary.
        enrichment: Lists from the enrichment collaborator.
        validation_issues: Validator errors and warnings after stabilisation.
        structural_warnings: Degradation and degeneracy warnings.
        checkpoints: Captured stage checkpoints.
        stage_timings: Milliseconds per stage.
        payload: Packaged response body fields.
        early_return: Once set, no further stage runs.
    """

    request_id: str
    request: DraftRequest
    budget: RequestBudget
    selection: ModelSelection | None = None
    abort_event: asyncio.Event | None = None
    raw_graph: Any = None
    graph: Graph | None = None
    edge_field_stash: EdgeFieldStash | None = None
    rationales: list[Any] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    llm_meta: dict[str, Any] = field(default_factory=dict)
    confidence: float | None = None
    clarifier_status: ClarifierStatus | None = None
    deterministic_repairs: list[str] = field(default_factory=list)
    repair_trace: dict[str, Any] = field(default_factory=dict)
    sweep: SweepResult | None = None
    skip_repair_due_to_budget: bool = False
    repair_timeout_ms: float | None = None
    threshold_sweep_trace: ThresholdSweepTrace | None = None
    enrichment: Enrichment = field(default_factory=Enrichment)
    validation_issues: list[ValidationIssue] = field(default_factory=list)
    structural_warnings: list[dict[str, Any]] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)
    stage_timings: dict[str, float] = field(default_factory=dict)
    payload: dict[str, Any] | None = None
    early_return: PipelineResponse | None = None

    def add_usage(self, usage: Usage) -> None:
        self.usage.input_tokens += usage.input_tokens
        self.usage.output_tokens += usage.output_tokens
        self.usage.cache_read_input_tokens += usage.cache_read_input_tokens

    def warn(self, code: str, message: str, **details: Any) -> None:
        """Record a structural warning surfaced in the response."""
        self.structural_warnings.append({"code": code, "message": message, **details})


@dataclass
class StageRuntime:
    """Services shared by every stage of one request.

    Attributes:
        config: Effective pipeline configuration.
        adapter: Draft adapter for the selected model; None for offline repair.
        engine: Deterministic repair engine.
        validator: Validation (normally cached) for the final gate.
        enricher: External enrichment collaborator.
        retry: Backoff policy for model calls.
    """

    config: PipelineConfig
    adapter: DraftAdapter | None
    engine: DeterministicRepairEngine
    validator: CachingValidator | Validator
    enricher: Enricher
    retry: RetryPolicy
