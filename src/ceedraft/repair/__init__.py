"""Deterministic graph repair: rule-based fixes that never call a model."""

from ceedraft.repair.buckets import Bucket, BucketedViolations, bucket_violations, classify
from ceedraft.repair.goal_inference import (
    DEFAULT_GOAL_LABEL,
    GoalInference,
    ensure_goal,
    extract_goal_from_brief,
    infer_goal,
)
from ceedraft.repair.sweep import DeterministicRepairEngine, SweepResult, SweepState
from ceedraft.repair.synthetic import Repair
from ceedraft.repair.threshold import ThresholdSweepTrace, run_threshold_sweep

__all__ = [
    "DEFAULT_GOAL_LABEL",
    "Bucket",
    "BucketedViolations",
    "DeterministicRepairEngine",
    "GoalInference",
    "Repair",
    "SweepResult",
    "SweepState",
    "ThresholdSweepTrace",
    "bucket_violations",
    "classify",
    "ensure_goal",
    "extract_goal_from_brief",
    "infer_goal",
    "run_threshold_sweep",
]
