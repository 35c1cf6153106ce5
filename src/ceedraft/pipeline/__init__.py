"""Staged drafting pipeline: orchestration, budget, checkpoints and errors."""

from ceedraft.pipeline.budget import RepairBudget, RequestBudget, compute_repair_budget
from ceedraft.pipeline.checkpoints import (
    Checkpoint,
    apply_checkpoint_size_guard,
    capture_checkpoint,
)
from ceedraft.pipeline.config import (
    PipelineConfig,
    PipelineConfigError,
    load_pipeline_config,
)
from ceedraft.pipeline.context import DraftRequest, PipelineContext, StageRuntime
from ceedraft.pipeline.errors import (
    ClientDisconnectError,
    DraftTimeoutError,
    ErrorCode,
    PipelineError,
    PipelineResponse,
    RequestBudgetExceededError,
    map_exception,
)
from ceedraft.pipeline.finalizer import finalize
from ceedraft.pipeline.orchestrator import PipelineOrchestrator
from ceedraft.pipeline.provenance import Provenance, assemble_provenance
from ceedraft.pipeline.stash import EdgeFieldStash, EdgeFields

__all__ = [
    "Checkpoint",
    "ClientDisconnectError",
    "DraftRequest",
    "DraftTimeoutError",
    "EdgeFieldStash",
    "EdgeFields",
    "ErrorCode",
    "PipelineConfig",
    "PipelineConfigError",
    "PipelineContext",
    "PipelineError",
    "PipelineOrchestrator",
    "PipelineResponse",
    "Provenance",
    "RepairBudget",
    "RequestBudget",
    "StageRuntime",
    "apply_checkpoint_size_guard",
    "assemble_provenance",
    "capture_checkpoint",
    "compute_repair_budget",
    "finalize",
    "load_pipeline_config",
    "map_exception",
]
