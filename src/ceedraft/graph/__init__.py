"""Graph inspection: identity helpers, detectors and the validator."""

from ceedraft.graph.detectors import (
    ConnectivityDiagnostic,
    UniformDirectionReport,
    UniformStrengthReport,
    check_connected_minimum_structure,
    detect_cycles,
    detect_uniform_direction,
    detect_uniform_strengths,
    find_dangling_edges,
    find_disconnected_options,
    find_invalid_edge_patterns,
    find_missing_kinds,
    find_orphan_factors,
    find_orphan_outcomes,
    find_status_quo_options,
    find_unreachable_factors,
    is_status_quo_label,
)
from ceedraft.graph.identity import (
    assign_edge_ids,
    calculate_meta,
    sort_edges,
    strip_dangling_edges,
)
from ceedraft.graph.validation_types import ValidationIssue, ValidationResult, Validator
from ceedraft.graph.validator import GraphValidator, format_repair_feedback

__all__ = [
    "ConnectivityDiagnostic",
    "GraphValidator",
    "UniformDirectionReport",
    "UniformStrengthReport",
    "ValidationIssue",
    "ValidationResult",
    "Validator",
    "assign_edge_ids",
    "calculate_meta",
    "check_connected_minimum_structure",
    "detect_cycles",
    "detect_uniform_direction",
    "detect_uniform_strengths",
    "find_dangling_edges",
    "find_disconnected_options",
    "find_invalid_edge_patterns",
    "find_missing_kinds",
    "find_orphan_factors",
    "find_orphan_outcomes",
    "find_status_quo_options",
    "find_unreachable_factors",
    "format_repair_feedback",
    "is_status_quo_label",
    "sort_edges",
    "strip_dangling_edges",
]
