"""Stage registry with decorator-based dependency validation.

Stages register via the ``@pipeline_stage`` decorator at import time. The
registry validates the dependency DAG, checks that every declared context
field exists and produces a stable topological execution order.

Usage::

    @pipeline_stage(name="draft", llm_bound=True, writes=("raw_graph", "graph"))
    async def stage_draft(ctx, runtime):
        ...

    @pipeline_stage(name="repair", depends_on=["draft"], reads=("graph",))
    async def stage_repair(ctx, runtime):
        ...

The execution order is produced by ``get_registry().execution_order()``.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

from ceedraft.pipeline.context import PipelineContext

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ceedraft.pipeline.context import StageRuntime

    StageFn = Callable[[PipelineContext, StageRuntime], Awaitable[None]]


@dataclass(frozen=True)
class StageMeta:
    """Metadata attached to a registered stage function."""

    name: str
    depends_on: tuple[str, ...]
    llm_bound: bool
    priority: int
    reads: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()


_STAGE_META_ATTR = "_pipeline_stage_meta"

_CONTEXT_FIELDS = frozenset(f.name for f in fields(PipelineContext))


class StageRegistry:
    """Collects ``@pipeline_stage``-decorated functions and validates their DAG."""

    def __init__(self) -> None:
        self._stages: dict[str, StageMeta] = {}
        self._functions: dict[str, StageFn] = {}

    def register(self, fn: StageFn, meta: StageMeta) -> None:
        """Register a stage function with its metadata.

        Raises:
            ValueError: If a stage with the same name is already registered.
        """
        if meta.name in self._stages:
            msg = (
                f"Duplicate stage name {meta.name!r}: "
                f"already registered by {self._functions[meta.name].__qualname__}"
            )
            raise ValueError(msg)
        self._stages[meta.name] = meta
        self._functions[meta.name] = fn

    def validate(self) -> list[str]:
        """Validate dependencies and declared context fields.

        Returns:
            List of error strings. Empty means valid.
        """
        errors: list[str] = []

        for meta in self._stages.values():
            for dep in meta.depends_on:
                if dep not in self._stages:
                    errors.append(
                        f"Stage {meta.name!r} depends on {dep!r}, which is not registered"
                    )
            for name in (*meta.reads, *meta.writes):
                if name not in _CONTEXT_FIELDS:
                    errors.append(f"Stage {meta.name!r} declares unknown context field {name!r}")

        if not errors:
            try:
                self.execution_order()
            except ValueError:
                ordered = set(self._partial_order())
                cycle_members = [name for name in self._stages if name not in ordered]
                errors.append(
                    f"Dependency cycle detected among: {', '.join(sorted(cycle_members))}"
                )

        return errors

    def _partial_order(self) -> list[str]:
        in_degree: dict[str, int] = dict.fromkeys(self._stages, 0)
        adj: dict[str, list[str]] = defaultdict(list)
        for meta in self._stages.values():
            for dep in meta.depends_on:
                adj[dep].append(meta.name)
                in_degree[meta.name] += 1

        # Min-heap keyed on priority for stable ordering
        heap: list[tuple[int, str]] = []
        for name, deg in in_degree.items():
            if deg == 0:
                heapq.heappush(heap, (self._stages[name].priority, name))

        result: list[str] = []
        while heap:
            _priority, name = heapq.heappop(heap)
            result.append(name)
            for neighbor in adj[name]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(heap, (self._stages[neighbor].priority, neighbor))
        return result

    def execution_order(self) -> list[str]:
        """Return stage names in stable topological order.

        Raises:
            ValueError: If the DAG has a cycle (call ``validate()`` for details).
        """
        result = self._partial_order()
        if len(result) != len(self._stages):
            msg = "Dependency cycle detected, call validate() for details"
            raise ValueError(msg)
        return result

    def get_meta(self, name: str) -> StageMeta | None:
        """Get metadata for a registered stage, or None."""
        return self._stages.get(name)

    def get_function(self, name: str) -> StageFn | None:
        """Get the registered function for a stage, or None."""
        return self._functions.get(name)

    @property
    def stage_names(self) -> list[str]:
        """All registered stage names (insertion order)."""
        return list(self._stages.keys())

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, name: str) -> bool:
        return name in self._stages

    def stage_table(self) -> str:
        """Markdown table of registered stages in execution order."""
        lines = ["| Priority | Name | Type | Depends On | Writes |"]
        lines.append("|----------|------|------|------------|--------|")
        for name in self.execution_order():
            meta = self._stages[name]
            stage_type = "llm" if meta.llm_bound else "deterministic"
            deps = ", ".join(meta.depends_on) if meta.depends_on else "-"
            writes = ", ".join(meta.writes) if meta.writes else "-"
            lines.append(f"| {meta.priority} | {name} | {stage_type} | {deps} | {writes} |")
        return "\n".join(lines)


_registry = StageRegistry()


def get_registry() -> StageRegistry:
    """Return the module-level stage registry."""
    return _registry


def pipeline_stage(
    name: str,
    *,
    depends_on: list[str] | None = None,
    llm_bound: bool = False,
    priority: int | None = None,
    reads: tuple[str, ...] = (),
    writes: tuple[str, ...] = (),
) -> Callable[[StageFn], StageFn]:
    """Decorator to register a pipeline stage.

    Args:
        name: Unique stage name (used in execution order and logging).
        depends_on: Stage names that must run before this one.
        llm_bound: True for stages that may call the model; the request
            budget is checked before they run.
        priority: Tiebreaker for topological sort. Defaults to registration
            order.
        reads: Context fields the stage reads.
        writes: Context fields the stage writes.
    """
    resolved_priority = priority if priority is not None else len(_registry)

    def decorator(fn: StageFn) -> StageFn:
        meta = StageMeta(
            name=name,
            depends_on=tuple(depends_on or []),
            llm_bound=llm_bound,
            priority=resolved_priority,
            reads=reads,
            writes=writes,
        )
        _registry.register(fn, meta)
        setattr(fn, _STAGE_META_ATTR, meta)
        return fn

    return decorator
