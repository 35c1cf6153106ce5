"""Exponential backoff with jitter for adapter calls.

``delay = min(base * factor ** (attempt - 1), max) +/- jitter%``

Built on tenacity. Attempts never overlap: each retry starts only after the
previous attempt has failed and the delay has elapsed.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ceedraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ceedraft.pipeline.config import RetryConfig

log = get_logger(__name__)

T = TypeVar("T")


class JitteredExponentialWait(wait_exponential):
    """``wait_exponential`` with symmetric percentage jitter."""

    def __init__(
        self,
        *,
        multiplier: float,
        exp_base: float,
        max_delay: float,
        jitter_pct: float,
        rng: random.Random,
    ) -> None:
        super().__init__(multiplier=multiplier, exp_base=exp_base, max=max_delay)
        self.jitter_pct = jitter_pct
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        base = super().__call__(retry_state)
        spread = base * self.jitter_pct / 100.0
        return max(0.0, base + self.rng.uniform(-spread, spread))


@dataclass
class RetryPolicy:
    """Backoff schedule and attempt budget.

    Attributes:
        max_attempts: Total attempts including the first.
        base_delay_ms: Delay before the first retry.
        factor: Growth factor per attempt.
        max_delay_ms: Upper bound before jitter.
        jitter_pct: Symmetric jitter as a percentage of the delay.
        rng: Random source, injectable for deterministic tests.
        sleep: Async sleep, injectable for tests.
    """

    max_attempts: int = 2
    base_delay_ms: float = 800.0
    factor: float = 2.0
    max_delay_ms: float = 5000.0
    jitter_pct: float = 25.0
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            factor=config.factor,
            max_delay_ms=config.max_delay_ms,
            jitter_pct=config.jitter_pct,
        )

    def wait_strategy(self) -> JitteredExponentialWait:
        """Tenacity wait in seconds matching this schedule."""
        return JitteredExponentialWait(
            multiplier=self.base_delay_ms / 1000.0,
            exp_base=self.factor,
            max_delay=self.max_delay_ms / 1000.0,
            jitter_pct=self.jitter_pct,
            rng=self.rng,
        )


def _log_retry(label: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        log.warning(
            "retry_scheduled",
            operation=label,
            attempt=retry_state.attempt_number,
            delay_ms=round(delay * 1000, 1),
            error=str(error),
        )

    return before_sleep


async def call_with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    *,
    label: str = "call",
) -> T:
    """Run ``operation`` until it succeeds or retries are exhausted.

    Args:
        operation: Receives the 1-based attempt number.
        policy: Backoff schedule.
        should_retry: Decides whether a failure is retryable.
        label: Name used in log events.

    Returns:
        The operation's result.

    Raises:
        Exception: The last failure, unchanged, when it is not retryable
            or no attempts remain.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception(should_retry),
        sleep=policy.sleep,
        before_sleep=_log_retry(label),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation(attempt.retry_state.attempt_number)
    raise AssertionError("retry loop ended without an outcome")
