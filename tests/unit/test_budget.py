"""Tests for the request budget."""

from __future__ import annotations

import pytest

from ceedraft.pipeline.budget import RequestBudget, compute_repair_budget
from ceedraft.pipeline.config import BudgetConfig
from ceedraft.pipeline.errors import RequestBudgetExceededError


class FakeClock:
    """Monotonic clock controlled by the test."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestComputeRepairBudget:
    """Tests for sizing the repair call."""

    def test_capped_by_max_repair_timeout(self) -> None:
        budget = compute_repair_budget(5_000, BudgetConfig())
        assert budget.remaining_ms == 75_000
        assert budget.effective_timeout_ms == 20_000
        assert not budget.skip

    def test_limited_by_remaining(self) -> None:
        budget = compute_repair_budget(70_000, BudgetConfig())
        assert budget.remaining_ms == 10_000
        assert budget.effective_timeout_ms == 8_000

    def test_skip_when_nothing_left(self) -> None:
        budget = compute_repair_budget(78_000, BudgetConfig())
        assert budget.effective_timeout_ms == 0
        assert budget.skip

    def test_skip_when_negative(self) -> None:
        assert compute_repair_budget(85_000, BudgetConfig()).skip


class TestRequestBudget:
    """Tests for RequestBudget."""

    def test_elapsed(self) -> None:
        clock = FakeClock(100.0)
        budget = RequestBudget(BudgetConfig(), clock=clock)
        clock.now = 101.5
        assert budget.elapsed_ms() == pytest.approx(1_500.0)

    def test_ensure_within_returns_elapsed(self) -> None:
        clock = FakeClock()
        budget = RequestBudget(BudgetConfig(), clock=clock)
        clock.now = 10.0
        assert budget.ensure_within("draft") == pytest.approx(10_000.0)

    def test_ensure_within_raises(self) -> None:
        clock = FakeClock()
        budget = RequestBudget(BudgetConfig(request_budget_ms=1_000), clock=clock)
        clock.now = 1.0
        with pytest.raises(RequestBudgetExceededError) as exc_info:
            budget.ensure_within("repair")
        assert exc_info.value.stage == "repair"
        assert exc_info.value.budget_ms == 1_000

    def test_repair_budget_uses_clock(self) -> None:
        clock = FakeClock()
        budget = RequestBudget(BudgetConfig(), clock=clock)
        clock.now = 80.0
        assert budget.repair_budget().skip
