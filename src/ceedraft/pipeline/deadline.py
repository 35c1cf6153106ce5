"""Hard per-call timeout raced against client disconnect."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, TypeVar

from ceedraft.observability.logging import get_logger
from ceedraft.pipeline.errors import ClientDisconnectError
from ceedraft.providers.base import UpstreamTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = get_logger(__name__)

T = TypeVar("T")


async def call_with_deadline(
    call: Callable[[], Awaitable[T]],
    *,
    timeout_ms: float,
    abort_event: asyncio.Event | None,
    provider: str,
    stage: str,
    attempt: int = 1,
) -> T:
    """Await ``call()`` under a hard timeout, cancelling it on disconnect.

    Args:
        call: Zero-argument factory for the model call; not invoked when the
            client has already gone.
        timeout_ms: Hard timeout for this call.
        abort_event: Set when the client disconnects.
        provider: Provider name for error messages.
        stage: Stage name for error messages.
        attempt: Attempt number, reported on disconnect.

    Returns:
        The call's result.

    Raises:
        UpstreamTimeoutError: ``phase="pre_aborted"`` if the client was gone
            before the call started, ``phase="body"`` on timeout.
        ClientDisconnectError: The client went away mid-call.
    """
    if abort_event is not None and abort_event.is_set():
        raise UpstreamTimeoutError(provider, "pre_aborted")

    started = time.perf_counter()
    task = asyncio.ensure_future(call())
    waiters: set[asyncio.Future[object]] = {task}
    abort_waiter: asyncio.Future[object] | None = None
    if abort_event is not None:
        abort_waiter = asyncio.ensure_future(abort_event.wait())
        waiters.add(abort_waiter)

    try:
        done, _pending = await asyncio.wait(
            waiters, timeout=timeout_ms / 1000.0, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        if abort_waiter is not None:
            abort_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    if abort_waiter is not None and abort_waiter in done:
        log.info("model_call_aborted", stage=stage, attempt=attempt, elapsed_ms=round(elapsed_ms))
        raise ClientDisconnectError(stage, attempt)
    log.warning("model_call_timeout", stage=stage, attempt=attempt, timeout_ms=timeout_ms)
    raise UpstreamTimeoutError(provider, "body", elapsed_ms)
