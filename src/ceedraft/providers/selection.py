"""Model selection with an explicit decision table.

For a task, the first matching row wins:

| Row | Condition                                   | Source   |
|-----|---------------------------------------------|----------|
| 1   | caller passed an override                   | override |
| 2   | ``CEE_{TASK}_MODEL`` is set                 | env      |
| 3   | config has ``tasks[task]`` or ``default``   | default  |
| 4   | config has a legacy ``provider`` block      | legacy   |
| 5   | otherwise                                   | fallback |

Model strings are ``provider/model``. A bare model name borrows the
provider from the configured default, legacy block or fallback, in that
order.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ceedraft.pipeline.config import ModelsConfig


class SelectionSource(StrEnum):
    """Where a model selection came from."""

    DEFAULT = "default"
    OVERRIDE = "override"
    ENV = "env"
    FALLBACK = "fallback"
    LEGACY = "legacy"


class ModelTask(StrEnum):
    """LLM-bound tasks with independent model selection."""

    DRAFT = "draft"
    REPAIR = "repair"

    @property
    def env_var(self) -> str:
        return f"CEE_{self.value.upper()}_MODEL"


@dataclass(frozen=True)
class ModelSelection:
    """Resolved provider and model for one task."""

    provider: str
    model: str
    source: SelectionSource

    @property
    def override_active(self) -> bool:
        """True when the caller or the environment overrode configuration."""
        return self.source in (SelectionSource.OVERRIDE, SelectionSource.ENV)


def _base_provider(config: ModelsConfig) -> str:
    if config.default and "/" in config.default:
        return config.default.split("/", 1)[0]
    if config.legacy is not None:
        return config.legacy.name.lower()
    return config.fallback.split("/", 1)[0]


def parse_model_spec(spec: str, default_provider: str) -> tuple[str, str]:
    """Split ``provider/model``; a bare model uses ``default_provider``.

    Raises:
        ValueError: If the spec is empty or names no model.
    """
    spec = spec.strip()
    if "/" in spec:
        provider, model = spec.split("/", 1)
    else:
        provider, model = default_provider, spec
    if not provider or not model:
        raise ValueError(f"Invalid model spec: {spec!r}")
    return provider.lower(), model


def select_model(
    task: ModelTask,
    config: ModelsConfig,
    *,
    override: str | None = None,
    env: Mapping[str, str] | None = None,
) -> ModelSelection:
    """Resolve the model for ``task`` following the decision table above."""
    env = os.environ if env is None else env
    base = _base_provider(config)

    if override:
        provider, model = parse_model_spec(override, base)
        return ModelSelection(provider, model, SelectionSource.OVERRIDE)

    env_spec = env.get(task.env_var)
    if env_spec:
        provider, model = parse_model_spec(env_spec, base)
        return ModelSelection(provider, model, SelectionSource.ENV)

    configured = config.tasks.get(task.value) or config.default
    if configured:
        provider, model = parse_model_spec(configured, base)
        return ModelSelection(provider, model, SelectionSource.DEFAULT)

    if config.legacy is not None:
        return ModelSelection(
            config.legacy.name.lower(), config.legacy.model, SelectionSource.LEGACY
        )

    provider, model = parse_model_spec(config.fallback, base)
    return ModelSelection(provider, model, SelectionSource.FALLBACK)
