"""Adapter contract for drafting and repairing graphs with an LLM.

The pipeline depends only on this contract. Concrete adapters translate
their own failures into the upstream error types below so that retry and
disconnect routing can dispatch on ``kind`` and ``phase``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    import asyncio

TimeoutPhase = Literal["pre_aborted", "body"]


class ErrorKind(StrEnum):
    """Closed taxonomy shared by adapter and pipeline errors."""

    STRUCTURAL = "structural"
    TIMEOUT = "timeout"
    UPSTREAM = "upstream"
    BUDGET = "budget"
    CLIENT_DISCONNECT = "client_disconnect"
    RATE_LIMIT = "rate_limit"
    CONFIG = "config"
    INTERNAL = "internal"


@dataclass
class DraftGraphArgs:
    """Input to ``draft_graph``.

    Attributes:
        brief: Free-text problem statement.
        previous_graph: Prior graph payload when refining.
        flags: Schema and feature flags forwarded to the adapter.
        seed: Optional sampling seed.
    """

    brief: str
    previous_graph: dict[str, Any] | None = None
    flags: dict[str, Any] = field(default_factory=dict)
    seed: int | None = None


@dataclass
class CallOpts:
    """Per-call options.

    Attributes:
        request_id: Correlation ID for logs.
        timeout_ms: Hard timeout for this call.
        abort_event: Set when the client disconnects.
    """

    request_id: str
    timeout_ms: int
    abort_event: asyncio.Event | None = None

    @property
    def aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()


@dataclass
class Usage:
    """Token accounting for one call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class DraftGraphResult:
    """Adapter response.

    Attributes:
        graph: Raw graph payload. Shape is asserted by the pipeline, not here.
        rationales: Free-form model rationales.
        usage: Token accounting.
        meta: Adapter metadata such as ``prompt_version``, ``prompt_source``
            (``"store"`` or ``"default"``) and ``prompt_store_version``.
    """

    graph: Any
    rationales: list[Any] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    meta: dict[str, Any] = field(default_factory=dict)


class DraftAdapter(Protocol):
    """Protocol for graph-drafting LLM adapters.

    Adapters that can also fix a graph implement ``RepairAdapter``; the
    repair stage checks for ``repair_graph`` before escalating and skips
    model-assisted repair when it is absent.
    """

    @property
    def provider(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def draft_graph(self, args: DraftGraphArgs, opts: CallOpts) -> DraftGraphResult:
        """Draft a graph from a brief.

        Raises:
            UpstreamTimeoutError: The call timed out or was aborted.
            UpstreamHTTPError: The provider answered with an error status.
            UpstreamNonJsonError: The response could not be parsed.
        """
        ...


class RepairAdapter(DraftAdapter, Protocol):
    """Draft adapter that also offers model-assisted repair."""

    async def repair_graph(
        self, graph: dict[str, Any], feedback: str, opts: CallOpts
    ) -> DraftGraphResult:
        """Return a corrected graph given violation feedback.

        Raises the same errors as ``draft_graph``.
        """
        ...


class UpstreamError(Exception):
    """Base exception for adapter failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class UpstreamTimeoutError(UpstreamError):
    """Raised when a call times out.

    ``phase="pre_aborted"`` means the client had already disconnected
    before the call started; it must never be retried.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(self, provider: str, phase: TimeoutPhase, elapsed_ms: float | None = None) -> None:
        self.phase: TimeoutPhase = phase
        self.elapsed_ms = elapsed_ms
        detail = "aborted before call" if phase == "pre_aborted" else "timed out"
        if elapsed_ms is not None:
            detail += f" after {elapsed_ms:.0f}ms"
        super().__init__(provider, detail)


class UpstreamHTTPError(UpstreamError):
    """Raised when the provider responds with an error status."""

    def __init__(self, provider: str, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        super().__init__(provider, f"HTTP {status_code}{': ' + message if message else ''}")


class UpstreamNonJsonError(UpstreamError):
    """Raised when the provider's response is not the expected JSON."""

    def __init__(self, provider: str, body_preview: str = "") -> None:
        self.body_preview = body_preview[:200]
        super().__init__(provider, "response was not valid JSON")
