"""Violation bucketing.

- A: informational, no graph-invalidating consequence.
- B: repairable by the deterministic sweep.
- C: needs model-assisted repair.

Codes not listed in B or C fall into A.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ceedraft.graph.validation_types import ValidationIssue


class Bucket(StrEnum):
    """Severity bucket of a structural violation."""

    A = "a"
    B = "b"
    C = "c"


BUCKET_B_CODES: frozenset[str] = frozenset(
    {
        "NAN_VALUE",
        "BELIEF_OUT_OF_RANGE",
        "SIGN_MISMATCH",
        "STRUCTURAL_EDGE_NOT_CANONICAL",
        "INVALID_EDGE_REF",
        "INVALID_EDGE_TYPE",
        "GOAL_HAS_OUTGOING",
        "DECISION_HAS_INCOMING",
        "CYCLE_DETECTED",
        "MISSING_GOAL",
        "NODE_LIMIT_EXCEEDED",
        "EDGE_LIMIT_EXCEEDED",
        "CATEGORY_MISMATCH",
        "EXTERNAL_HAS_DATA",
        "ORPHAN_OUTCOME",
        "ORPHAN_FACTOR",
    }
)

BUCKET_C_CODES: frozenset[str] = frozenset(
    {
        "NO_PATH_TO_GOAL",
        "NO_EFFECT_PATH",
        "UNREACHABLE_FROM_DECISION",
        "MISSING_BRIDGE",
        "MISSING_DECISION",
        "INSUFFICIENT_OPTIONS",
        "INVALID_INTERVENTION_REF",
    }
)


def classify(code: str) -> Bucket:
    if code in BUCKET_C_CODES:
        return Bucket.C
    if code in BUCKET_B_CODES:
        return Bucket.B
    return Bucket.A


@dataclass
class BucketedViolations:
    """Violations grouped by bucket."""

    a: list[ValidationIssue] = field(default_factory=list)
    b: list[ValidationIssue] = field(default_factory=list)
    c: list[ValidationIssue] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.a) + len(self.b) + len(self.c)

    def summary(self) -> dict[str, int]:
        return {"a": len(self.a), "b": len(self.b), "c": len(self.c)}

    def codes(self, bucket: Bucket | None = None) -> list[str]:
        """Distinct codes, optionally for one bucket, sorted."""
        if bucket is None:
            issues = [*self.a, *self.b, *self.c]
        else:
            issues = getattr(self, bucket.value)
        return sorted({issue.code for issue in issues})

    def to_dict(self) -> dict[str, Any]:
        return {"summary": self.summary(), "codes": self.codes()}


def bucket_violations(issues: Iterable[ValidationIssue]) -> BucketedViolations:
    grouped = BucketedViolations()
    for issue in issues:
        getattr(grouped, classify(issue.code).value).append(issue)
    return grouped
