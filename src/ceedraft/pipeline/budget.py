"""Request-wide wall-clock budget.

Before every LLM-bound stage the elapsed time is checked against the
budget. Before the repair stage the model-assisted repair call is sized:

    remaining = budget - elapsed - headroom
    effective_timeout = min(max_repair_timeout, remaining - safety_margin)

and skipped when ``effective_timeout <= 0``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ceedraft.pipeline.errors import RequestBudgetExceededError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ceedraft.pipeline.config import BudgetConfig


@dataclass(frozen=True)
class RepairBudget:
    """Time available to a model-assisted repair call, in milliseconds."""

    elapsed_ms: float
    remaining_ms: float
    effective_timeout_ms: float

    @property
    def skip(self) -> bool:
        return self.effective_timeout_ms <= 0


def compute_repair_budget(elapsed_ms: float, config: BudgetConfig) -> RepairBudget:
    """Size the repair call from time already spent."""
    remaining = config.request_budget_ms - elapsed_ms - config.post_processing_headroom_ms
    effective = min(config.max_repair_timeout_ms, remaining - config.repair_safety_margin_ms)
    return RepairBudget(
        elapsed_ms=elapsed_ms,
        remaining_ms=remaining,
        effective_timeout_ms=effective,
    )


class RequestBudget:
    """Tracks elapsed time for one request.

    Args:
        config: Budget settings.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        config: BudgetConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._clock = clock
        self._started = clock()

    def elapsed_ms(self) -> float:
        return (self._clock() - self._started) * 1000.0

    def ensure_within(self, stage: str) -> float:
        """Raise if the budget is spent; return elapsed milliseconds.

        Raises:
            RequestBudgetExceededError: If ``elapsed >= budget``.
        """
        elapsed = self.elapsed_ms()
        if elapsed >= self.config.request_budget_ms:
            raise RequestBudgetExceededError(stage, elapsed, self.config.request_budget_ms)
        return elapsed

    def repair_budget(self) -> RepairBudget:
        return compute_repair_budget(self.elapsed_ms(), self.config)
