"""Repair records and synthetic edge construction.

Every edge created by a repair routine carries ``origin="repair"``,
``provenance_source="synthetic"`` and the routine name in ``provenance``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ceedraft.models.graph import Edge

STRUCTURAL_MEAN = 1.0
STRUCTURAL_STD = 0.01
STRUCTURAL_EXISTS = 1.0

# outcome/risk -> goal wiring
BRIDGE_OUTCOME_MEAN = 0.7
BRIDGE_RISK_MEAN = -0.5
BRIDGE_STD = 0.15
BRIDGE_EXISTS = 0.9

SYNTHETIC_SOURCE = "synthetic"


@dataclass(frozen=True)
class Repair:
    """One applied graph mutation.

    Attributes:
        code: What was fixed (e.g. ``ORPHAN_OUTCOME_WIRED``).
        path: Where, as ``nodes[id]`` or ``edges[id]``.
        action: Short description of the mutation.
    """

    code: str
    path: str
    action: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "path": self.path, "action": self.action}


def structural_edge(from_id: str, to_id: str, provenance: str) -> Edge:
    """Synthetic canonical structural edge (1 / 0.01 / 1)."""
    return Edge(
        from_=from_id,
        to=to_id,
        strength_mean=STRUCTURAL_MEAN,
        strength_std=STRUCTURAL_STD,
        belief_exists=STRUCTURAL_EXISTS,
        effect_direction="positive",
        origin="repair",
        provenance=provenance,
        provenance_source=SYNTHETIC_SOURCE,
    )


def causal_edge(
    from_id: str,
    to_id: str,
    *,
    mean: float,
    std: float,
    belief: float,
    provenance: str,
) -> Edge:
    """Synthetic causal edge; direction follows the sign of ``mean``."""
    return Edge(
        from_=from_id,
        to=to_id,
        strength_mean=mean,
        strength_std=std,
        belief_exists=belief,
        effect_direction="negative" if mean < 0 else "positive",
        origin="repair",
        provenance=provenance,
        provenance_source=SYNTHETIC_SOURCE,
    )


def bridge_edge(from_id: str, from_kind: str, goal_id: str, provenance: str) -> Edge:
    """Synthetic outcome -> goal (positive) or risk -> goal (negative) edge."""
    mean = BRIDGE_RISK_MEAN if from_kind == "risk" else BRIDGE_OUTCOME_MEAN
    return causal_edge(
        from_id,
        goal_id,
        mean=mean,
        std=BRIDGE_STD,
        belief=BRIDGE_EXISTS,
        provenance=provenance,
    )
