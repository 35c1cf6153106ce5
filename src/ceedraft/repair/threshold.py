"""Goal threshold sweep.

Models sometimes invent numeric targets for qualitative goals ("improve
quality" becomes a threshold of 0.8). A threshold survives only when the
goal also carries the raw text it was parsed from, and that text contains
a digit. A surviving threshold on a qualitative label is flagged as
possibly inferred when its raw value is a round number with no unit or a
percent unit.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any

from ceedraft.observability.logging import get_logger
from ceedraft.repair.synthetic import Repair

log = get_logger(__name__)

STRIPPED_NO_RAW = "GOAL_THRESHOLD_STRIPPED_NO_RAW"
STRIPPED_NO_DIGITS = "GOAL_THRESHOLD_STRIPPED_NO_DIGITS"
POSSIBLY_INFERRED = "GOAL_THRESHOLD_POSSIBLY_INFERRED"

THRESHOLD_FIELDS = (
    "goal_threshold",
    "goal_threshold_raw",
    "goal_threshold_unit",
    "goal_threshold_cap",
)

_DIGIT = re.compile(r"\d")


@dataclass
class ThresholdSweepTrace:
    """Summary of one threshold sweep.

    Attributes:
        ran: False when the graph was empty or malformed.
        goals_checked: Goal nodes carrying a threshold.
        strips_applied: Thresholds removed.
        warnings_emitted: Inference warnings raised.
        codes: Codes in the order they were emitted.
        duration_ms: Wall time of the sweep.
    """

    ran: bool = False
    goals_checked: int = 0
    strips_applied: int = 0
    warnings_emitted: int = 0
    codes: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    repairs: list[Repair] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ran": self.ran,
            "goals_checked": self.goals_checked,
            "strips_applied": self.strips_applied,
            "warnings_emitted": self.warnings_emitted,
            "codes": list(self.codes),
            "duration_ms": self.duration_ms,
        }


def _strip_threshold(node: Any) -> None:
    for name in THRESHOLD_FIELDS:
        setattr(node, name, None)


def run_threshold_sweep(graph: Any) -> ThresholdSweepTrace:
    """Strip unsupported goal thresholds, in place.

    Accepts anything graph-like; a missing graph, a non-list ``nodes`` or
    an empty node list yields a trace with ``ran=False``.
    """
    nodes = getattr(graph, "nodes", None)
    if not isinstance(nodes, list) or not nodes:
        return ThresholdSweepTrace(ran=False)

    started = time.perf_counter()
    trace = ThresholdSweepTrace(ran=True)
    for node in nodes:
        if getattr(node, "kind", None) != "goal" or getattr(node, "goal_threshold", None) is None:
            continue
        trace.goals_checked += 1
        raw = node.goal_threshold_raw
        label = node.label or ""
        path = f"nodes[{node.id}].goal_threshold"

        if raw is None:
            _strip_threshold(node)
            trace.strips_applied += 1
            trace.codes.append(STRIPPED_NO_RAW)
            trace.repairs.append(Repair(STRIPPED_NO_RAW, path, "stripped threshold without raw"))
            continue

        if not _DIGIT.search(str(raw)):
            _strip_threshold(node)
            trace.strips_applied += 1
            trace.codes.append(STRIPPED_NO_DIGITS)
            trace.repairs.append(
                Repair(STRIPPED_NO_DIGITS, path, f"stripped threshold with raw {raw!r}")
            )
            if not _DIGIT.search(label):
                trace.warnings_emitted += 1
                trace.codes.append(POSSIBLY_INFERRED)
            continue

        if not _DIGIT.search(label) and _looks_inferred(node):
            trace.warnings_emitted += 1
            trace.codes.append(POSSIBLY_INFERRED)

    trace.duration_ms = round((time.perf_counter() - started) * 1000, 3)
    if trace.strips_applied or trace.warnings_emitted:
        log.info(
            "threshold_sweep_applied",
            goals_checked=trace.goals_checked,
            strips=trace.strips_applied,
            warnings=trace.warnings_emitted,
        )
    return trace


def _looks_inferred(node: Any) -> bool:
    """True for a round numeric raw (50, 80) with no unit or a percent unit.

    String raws such as ``"£50k"`` quote the brief and are never flagged.
    """
    unit = node.goal_threshold_unit
    raw = node.goal_threshold_raw
    if unit not in (None, "", "%"):
        return False
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return False
    return raw % 5 == 0
