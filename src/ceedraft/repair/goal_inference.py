"""Goal inference for graphs drafted without a goal node.

Label source priority: an explicit label supplied by the caller, then a
phrase extracted from the brief, then a fixed placeholder.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from ceedraft.models.graph import Node
from ceedraft.repair.synthetic import Repair, bridge_edge

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph

GoalSource = Literal["explicit", "brief", "placeholder"]

DEFAULT_GOAL_LABEL = "Achieve the best outcome for this decision"

GOAL_IDS: dict[str, str] = {
    "explicit": "goal_explicit",
    "brief": "goal_inferred",
    "placeholder": "goal_placeholder",
}

MIN_GOAL_LENGTH = 5
MAX_GOAL_LENGTH = 200

# Ordered: statements of intent first, bare verbs last.
GOAL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(?:my|our|the)\s+goal\s+is\s+(?:to\s+)?(.+?)(?:[.!?\n]|$)", re.IGNORECASE),
    re.compile(r"\bobjective\s+is\s+(?:to\s+)?(.+?)(?:[.!?\n]|$)", re.IGNORECASE),
    re.compile(r"\baim\s+is\s+(?:to\s+)?(.+?)(?:[.!?\n]|$)", re.IGNORECASE),
    re.compile(r"\bsuccess\s+means\s+(.+?)(?:[.!?\n]|$)", re.IGNORECASE),
    re.compile(r"\b(?:want|need|hope|aim)\s+to\s+(.+?)(?:[.!?\n]|$)", re.IGNORECASE),
    re.compile(
        r"\bto\s+((?:achieve|improve|increase|reduce|decrease|maximi[sz]e|minimi[sz]e|grow|cut|lower|boost)\b.+?)(?:[.!?\n]|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"^((?:achieve|improve|increase|reduce|decrease|maximi[sz]e|minimi[sz]e|grow|cut|lower|boost)\b.+?)(?:[.!?\n]|$)",
        re.IGNORECASE | re.MULTILINE,
    ),
]

_LEADING_ARTICLE = re.compile(r"^(?:a|an|the)\s+", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[\s,;:.!?]+$")


@dataclass
class GoalInference:
    """Chosen goal label and where it came from."""

    label: str
    source: GoalSource


@dataclass
class GoalInferenceResult:
    """Outcome of ``ensure_goal``.

    Attributes:
        added: True if a goal node was synthesised.
        goal_id: ID of the synthesised goal.
        source: Label source when added.
        label: Label when added.
        wired_outcomes: Outcome nodes wired to the new goal.
        wired_risks: Risk nodes wired to the new goal.
        repairs: Applied mutations.
    """

    added: bool = False
    goal_id: str | None = None
    source: GoalSource | None = None
    label: str | None = None
    wired_outcomes: list[str] = field(default_factory=list)
    wired_risks: list[str] = field(default_factory=list)
    repairs: list[Repair] = field(default_factory=list)


def _clean(text: str) -> str:
    text = _TRAILING_PUNCT.sub("", text.strip())
    text = _LEADING_ARTICLE.sub("", text)
    return text.strip()


def extract_goal_from_brief(brief: str) -> str | None:
    """Pull a goal phrase from the brief, or None if nothing usable matches."""
    if not brief:
        return None
    for pattern in GOAL_PATTERNS:
        match = pattern.search(brief)
        if match is None:
            continue
        candidate = _clean(match.group(1))
        if MIN_GOAL_LENGTH <= len(candidate) <= MAX_GOAL_LENGTH:
            return candidate[0].upper() + candidate[1:]
    return None


def infer_goal(brief: str, explicit_label: str | None = None) -> GoalInference:
    """Pick a goal label by source priority."""
    if explicit_label and explicit_label.strip():
        return GoalInference(label=explicit_label.strip(), source="explicit")
    extracted = extract_goal_from_brief(brief)
    if extracted:
        return GoalInference(label=extracted, source="brief")
    return GoalInference(label=DEFAULT_GOAL_LABEL, source="placeholder")


def ensure_goal(
    graph: Graph, brief: str, explicit_label: str | None = None
) -> GoalInferenceResult:
    """Add a goal node if the graph has none, then wire outcomes and risks.

    Idempotent: a graph that already has any goal node is left untouched.
    """
    if graph.has_kind("goal"):
        return GoalInferenceResult()

    inference = infer_goal(brief, explicit_label)
    goal_id = GOAL_IDS[inference.source]
    graph.nodes.append(Node(id=goal_id, kind="goal", label=inference.label))
    result = GoalInferenceResult(
        added=True,
        goal_id=goal_id,
        source=inference.source,
        label=inference.label,
    )
    result.repairs.append(
        Repair("GOAL_INFERRED", f"nodes[{goal_id}]", f"added goal from {inference.source}")
    )

    for node in graph.nodes:
        if node.kind not in ("outcome", "risk"):
            continue
        graph.edges.append(bridge_edge(node.id, node.kind, goal_id, "goal_inference"))
        (result.wired_risks if node.kind == "risk" else result.wired_outcomes).append(node.id)
        result.repairs.append(
            Repair("GOAL_EDGE_WIRED", f"nodes[{node.id}]", f"wired {node.id} -> {goal_id}")
        )
    return result
