"""Validation result types shared by the validator and the repair engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from ceedraft.models.graph import Graph


@dataclass
class ValidationIssue:
    """A single structural or numeric problem found in a graph.

    Attributes:
        code: Stable machine-readable code (e.g. ``NO_PATH_TO_GOAL``).
        message: Human-readable description.
        path: Location hint such as ``edges[opt_a::fac_b::0]``.
        severity: "error" blocks validity, "warning" is advisory.
        node_id: Offending node, if any.
        edge_id: Offending edge, if any.
    """

    code: str
    message: str
    path: str = ""
    severity: Literal["error", "warning"] = "error"
    node_id: str | None = None
    edge_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
        }
        if self.path:
            data["path"] = self.path
        if self.node_id is not None:
            data["node_id"] = self.node_id
        if self.edge_id is not None:
            data["edge_id"] = self.edge_id
        return data


@dataclass
class ValidationResult:
    """Outcome of validating one graph.

    Attributes:
        errors: Issues that make the graph invalid.
        warnings: Advisory issues.
        normalized: Optional normalised copy of the graph.
    """

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    normalized: Graph | None = None

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error_codes(self) -> list[str]:
        """Distinct error codes, sorted."""
        return sorted({issue.code for issue in self.errors})

    @property
    def summary(self) -> str:
        parts: list[str] = []
        if self.errors:
            parts.append(f"{len(self.errors)} errors")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warnings")
        return ", ".join(parts) or "valid"


class Validator(Protocol):
    """Anything that can validate a graph."""

    def validate(self, graph: Graph) -> ValidationResult: ...
