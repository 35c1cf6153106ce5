"""Clarification confidence from brief and draft heuristics."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from ceedraft.pipeline.config import ConfidenceConfig

ClarifierStatus = Literal["confident", "max_rounds", "complete"]

BASE_SCORE = 0.4
MAX_SCORE = 0.99


def calc_confidence(brief: str, raw_graph: Any) -> float:
    """Score how well-specified the request looks, in [0, 0.99].

    Rewards a detailed brief (length, numbers) and a draft that names a
    goal, offers at least two options and quantifies its edges.
    """
    score = BASE_SCORE
    words = len(brief.split())
    if words >= 20:
        score += 0.1
    if words >= 50:
        score += 0.05
    if any(ch.isdigit() for ch in brief):
        score += 0.05

    nodes = raw_graph.get("nodes") if isinstance(raw_graph, dict) else None
    edges = raw_graph.get("edges") if isinstance(raw_graph, dict) else None
    if isinstance(nodes, list):
        kinds = [str(n.get("kind", "")).lower() for n in nodes if isinstance(n, dict)]
        if "goal" in kinds:
            score += 0.1
        if kinds.count("option") >= 2:
            score += 0.1
        if "outcome" in kinds or "risk" in kinds:
            score += 0.05
    if isinstance(edges, list) and edges:
        quantified = sum(
            1 for e in edges if isinstance(e, dict) and e.get("strength_mean") is not None
        )
        if quantified / len(edges) >= 0.8:
            score += 0.1

    return round(min(MAX_SCORE, score), 2)


def decide_clarifier_status(
    confidence: float, clarification_round: int, config: ConfidenceConfig
) -> ClarifierStatus:
    """Band the confidence score.

    ``confident`` at or above the threshold; below it, ``max_rounds`` once
    the clarification rounds are used up, otherwise ``complete``.
    """
    if confidence >= config.confident_threshold:
        return "confident"
    if clarification_round >= config.clarifier_max_rounds:
        return "max_rounds"
    return "complete"
