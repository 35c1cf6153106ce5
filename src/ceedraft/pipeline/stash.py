"""Frozen snapshot of edge numeric fields taken right after drafting.

Later stages may rewrite or drop edge fields; the stash keeps what the
model originally said, keyed by edge ID and by ``from::to``.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


def _first_number(*candidates: Any) -> float | None:
    """First real number among ``candidates``; bools and None are skipped."""
    for value in candidates:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


@dataclass(frozen=True)
class EdgeFields:
    """Numeric fields of one edge as drafted."""

    strength_mean: float | None
    strength_std: float | None
    belief_exists: float | None
    effect_direction: str | None

    @classmethod
    def from_raw(cls, edge: Mapping[str, Any]) -> EdgeFields:
        strength = edge.get("strength")
        nested = strength if isinstance(strength, dict) else {}
        direction = edge.get("effect_direction")
        return cls(
            strength_mean=_first_number(edge.get("strength_mean"), nested.get("mean")),
            strength_std=_first_number(edge.get("strength_std"), nested.get("std")),
            belief_exists=_first_number(
                edge.get("belief_exists"), edge.get("exists_probability")
            ),
            effect_direction=direction if isinstance(direction, str) else None,
        )


@dataclass(frozen=True)
class EdgeFieldStash:
    """Read-only lookup of drafted edge fields.

    Attributes:
        by_edge_id: Fields keyed by the drafted edge ID.
        by_pair: Fields keyed by ``from::to``; the first edge of a pair wins.
    """

    by_edge_id: Mapping[str, EdgeFields]
    by_pair: Mapping[str, EdgeFields]

    @classmethod
    def from_raw_edges(cls, edges: Sequence[Any]) -> EdgeFieldStash:
        """Build the stash from raw edge dicts; non-dict entries are skipped."""
        by_id: dict[str, EdgeFields] = {}
        by_pair: dict[str, EdgeFields] = {}
        for edge in edges:
            if not isinstance(edge, dict):
                continue
            fields = EdgeFields.from_raw(edge)
            edge_id = edge.get("id")
            if isinstance(edge_id, str) and edge_id:
                by_id.setdefault(edge_id, fields)
            source, target = edge.get("from"), edge.get("to")
            if isinstance(source, str) and isinstance(target, str):
                by_pair.setdefault(f"{source}::{target}", fields)
        return cls(by_edge_id=MappingProxyType(by_id), by_pair=MappingProxyType(by_pair))

    def lookup(self, edge_id: str | None, pair_key: str) -> EdgeFields | None:
        """Find fields by ID first, then by ``from::to``."""
        if edge_id and edge_id in self.by_edge_id:
            return self.by_edge_id[edge_id]
        return self.by_pair.get(pair_key)

    def __len__(self) -> int:
        return len(self.by_pair)
