"""Response quality score."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

MIN_SCORE = 1
MAX_SCORE = 10


def _clamp(value: float) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, round(value)))


@dataclass(frozen=True)
class QualityScore:
    """Integer scores in [1, 10]."""

    overall: int
    structure: int
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_quality(
    confidence: float | None,
    remaining_violations: int,
    degeneracy_warnings: int,
) -> QualityScore:
    """Score a finished graph.

    Args:
        confidence: Clarification confidence in [0, 1).
        remaining_violations: Validator errors left after repair.
        degeneracy_warnings: Uniform-strength and uniform-direction warnings.
    """
    confidence_score = _clamp((confidence or 0.0) * MAX_SCORE)
    structure_score = _clamp(MAX_SCORE - 2 * remaining_violations - degeneracy_warnings)
    overall = _clamp(0.6 * structure_score + 0.4 * confidence_score)
    return QualityScore(overall=overall, structure=structure_score, confidence=confidence_score)
