"""Tests for call_with_deadline."""

from __future__ import annotations

import asyncio

import pytest

from ceedraft.pipeline.deadline import call_with_deadline
from ceedraft.pipeline.errors import ClientDisconnectError
from ceedraft.providers.base import UpstreamTimeoutError


class TestCallWithDeadline:
    """Tests for the hard timeout and disconnect race."""

    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        async def call() -> str:
            return "ok"

        result = await call_with_deadline(
            call, timeout_ms=1_000, abort_event=asyncio.Event(), provider="fake", stage="draft"
        )
        assert result == "ok"

    @pytest.mark.asyncio
    async def test_pre_aborted_skips_call(self) -> None:
        called = False

        async def call() -> str:
            nonlocal called
            called = True
            return "ok"

        event = asyncio.Event()
        event.set()
        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await call_with_deadline(
                call, timeout_ms=1_000, abort_event=event, provider="fake", stage="draft"
            )
        assert exc_info.value.phase == "pre_aborted"
        assert not called

    @pytest.mark.asyncio
    async def test_timeout_is_body_phase(self) -> None:
        async def call() -> str:
            await asyncio.sleep(5)
            return "late"

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await call_with_deadline(
                call, timeout_ms=20, abort_event=None, provider="fake", stage="draft"
            )
        assert exc_info.value.phase == "body"
        assert exc_info.value.elapsed_ms is not None

    @pytest.mark.asyncio
    async def test_abort_mid_call(self) -> None:
        event = asyncio.Event()

        async def call() -> str:
            event.set()
            await asyncio.sleep(5)
            return "late"

        with pytest.raises(ClientDisconnectError) as exc_info:
            await call_with_deadline(
                call,
                timeout_ms=5_000,
                abort_event=event,
                provider="fake",
                stage="repair",
                attempt=2,
            )
        assert exc_info.value.stage == "repair"
        assert exc_info.value.attempt == 2

    @pytest.mark.asyncio
    async def test_call_errors_propagate(self) -> None:
        async def call() -> str:
            raise ValueError("bad body")

        with pytest.raises(ValueError, match="bad body"):
            await call_with_deadline(
                call, timeout_ms=1_000, abort_event=None, provider="fake", stage="draft"
            )
