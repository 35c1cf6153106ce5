"""Pipeline stages, registered in execution order on import."""

from ceedraft.pipeline.stages.draft import stage_draft
from ceedraft.pipeline.stages.enrich import Enricher, NoopEnricher, stage_enrich
from ceedraft.pipeline.stages.package import stage_package
from ceedraft.pipeline.stages.registry import (
    StageMeta,
    StageRegistry,
    get_registry,
    pipeline_stage,
)
from ceedraft.pipeline.stages.repair import stage_repair
from ceedraft.pipeline.stages.threshold import stage_threshold_sweep
from ceedraft.pipeline.stages.validate import stage_validate

__all__ = [
    "Enricher",
    "NoopEnricher",
    "StageMeta",
    "StageRegistry",
    "get_registry",
    "pipeline_stage",
    "stage_draft",
    "stage_enrich",
    "stage_package",
    "stage_repair",
    "stage_threshold_sweep",
    "stage_validate",
]
