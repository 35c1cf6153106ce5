"""Pipeline error taxonomy and the caller-facing error envelope.

Four kinds matter to callers:
1. Structural: malformed, empty or disconnected graphs. HTTP 4xx, never retryable.
2. Upstream: timeouts, non-JSON bodies and HTTP failures from the adapter.
   HTTP >= 500 whatever the upstream status was, always retryable.
3. Budget: the request-wide deadline passed. Fatal here; the caller may retry.
4. Client disconnect: never retried and never reported as a timeout.

Every error carries a ``kind``; ``map_exception`` dispatches on it, with
the timeout ``phase`` separating client disconnects from slow providers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ceedraft.observability.logging import get_logger
from ceedraft.providers.base import ErrorKind, UpstreamHTTPError

log = get_logger(__name__)

ERROR_SCHEMA = "cee.error.v1"
ERROR_SOURCE = "cee"

# Nginx-style status for requests closed by the client.
CLIENT_CLOSED_REQUEST = 499


class ErrorCode(StrEnum):
    """Closed set of caller-facing error codes."""

    GRAPH_INVALID = "CEE_GRAPH_INVALID"
    TIMEOUT = "CEE_TIMEOUT"
    LLM_UPSTREAM_ERROR = "CEE_LLM_UPSTREAM_ERROR"
    VALIDATION_FAILED = "CEE_VALIDATION_FAILED"
    RATE_LIMIT = "CEE_RATE_LIMIT"
    CLIENT_DISCONNECTED = "CEE_CLIENT_DISCONNECTED"
    REQUEST_BUDGET_EXCEEDED = "CEE_REQUEST_BUDGET_EXCEEDED"
    INTERNAL_ERROR = "CEE_INTERNAL_ERROR"


class PipelineError(Exception):
    """Raised when a pipeline stage fails."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"Pipeline error in stage '{stage}': {message}")


class ClientDisconnectError(PipelineError):
    """Raised when the client went away before or during an LLM call."""

    kind = ErrorKind.CLIENT_DISCONNECT

    def __init__(self, stage: str, attempt: int = 1) -> None:
        self.attempt = attempt
        super().__init__(stage, f"client disconnected (attempt {attempt})")


class DraftTimeoutError(PipelineError):
    """Raised when every attempt of an LLM call timed out."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, stage: str, attempts: int, timeout_ms: int) -> None:
        self.attempts = attempts
        self.timeout_ms = timeout_ms
        super().__init__(stage, f"timed out after {attempts} attempt(s) of {timeout_ms}ms")


class RequestBudgetExceededError(PipelineError):
    """Raised when the request-wide budget is spent before an LLM-bound stage."""

    kind = ErrorKind.BUDGET

    def __init__(self, stage: str, elapsed_ms: float, budget_ms: int) -> None:
        self.elapsed_ms = elapsed_ms
        self.budget_ms = budget_ms
        super().__init__(stage, f"request budget exhausted ({elapsed_ms:.0f}ms of {budget_ms}ms)")


class GraphShapeError(PipelineError):
    """Raised when the drafted graph is not a ``{nodes: [], edges: []}`` object."""

    kind = ErrorKind.STRUCTURAL

    def __init__(self, stage: str, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(stage, f"{reason}{': ' + detail if detail else ''}")


class CostLimitExceededError(PipelineError):
    """Raised when the estimated prompt size exceeds the configured limit."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, stage: str, estimated_tokens: int, limit: int) -> None:
        self.estimated_tokens = estimated_tokens
        self.limit = limit
        super().__init__(stage, f"estimated {estimated_tokens} tokens exceeds {limit}")


class ErrorEnvelope(BaseModel):
    """Caller-facing error body."""

    model_config = ConfigDict(populate_by_name=True)

    schema_: str = Field(default=ERROR_SCHEMA, alias="schema")
    source: str = ERROR_SOURCE
    code: ErrorCode
    message: str
    retryable: bool
    details: dict[str, Any] | None = None


@dataclass
class PipelineResponse:
    """What the finalize function returns."""

    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def build_error_response(
    code: ErrorCode,
    message: str,
    *,
    status_code: int,
    retryable: bool,
    details: dict[str, Any] | None = None,
) -> PipelineResponse:
    """Build an error response; ``None`` detail values are dropped."""
    clean = {k: v for k, v in (details or {}).items() if v is not None}
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        retryable=retryable,
        details=clean or None,
    )
    return PipelineResponse(
        status_code=status_code,
        body=envelope.model_dump(by_alias=True, exclude_none=True, mode="json"),
    )


def error_kind(exc: BaseException) -> ErrorKind:
    """The taxonomy kind of ``exc``; anything untagged is internal.

    A timeout raised before the call started is a client disconnect.
    """
    kind = getattr(exc, "kind", None)
    if not isinstance(kind, ErrorKind):
        return ErrorKind.INTERNAL
    if kind is ErrorKind.TIMEOUT and getattr(exc, "phase", None) == "pre_aborted":
        return ErrorKind.CLIENT_DISCONNECT
    return kind


def map_exception(exc: Exception, request_id: str) -> PipelineResponse:
    """Map any failure to the fixed error taxonomy. Never re-raises."""
    stage = getattr(exc, "stage", None)
    base: dict[str, Any] = {"request_id": request_id, "stage": stage}
    kind = error_kind(exc)

    if kind is ErrorKind.CLIENT_DISCONNECT:
        return build_error_response(
            ErrorCode.CLIENT_DISCONNECTED,
            "Client disconnected before the request completed",
            status_code=CLIENT_CLOSED_REQUEST,
            retryable=False,
            details=base,
        )
    if kind is ErrorKind.TIMEOUT:
        return build_error_response(
            ErrorCode.TIMEOUT,
            "The model did not respond in time",
            status_code=504,
            retryable=True,
            details={**base, "attempts": getattr(exc, "attempts", None)},
        )
    if kind is ErrorKind.BUDGET:
        elapsed_ms = getattr(exc, "elapsed_ms", None)
        return build_error_response(
            ErrorCode.REQUEST_BUDGET_EXCEEDED,
            "Request budget exhausted",
            status_code=504,
            retryable=True,
            details={
                **base,
                "elapsed_ms": round(elapsed_ms) if elapsed_ms is not None else None,
                "budget_ms": getattr(exc, "budget_ms", None),
            },
        )
    if kind is ErrorKind.UPSTREAM:
        upstream_status = exc.status_code if isinstance(exc, UpstreamHTTPError) else None
        return build_error_response(
            ErrorCode.LLM_UPSTREAM_ERROR,
            "The model provider returned an invalid response",
            status_code=502,
            retryable=True,
            details={
                **base,
                "provider": getattr(exc, "provider", None),
                "upstream_status": upstream_status,
            },
        )
    if kind is ErrorKind.STRUCTURAL:
        return build_error_response(
            ErrorCode.GRAPH_INVALID,
            "The drafted graph is malformed",
            status_code=400,
            retryable=False,
            details={**base, "reason": getattr(exc, "reason", None)},
        )
    if kind is ErrorKind.RATE_LIMIT:
        return build_error_response(
            ErrorCode.RATE_LIMIT,
            "Request exceeds the allowed size",
            status_code=429,
            retryable=True,
            details={
                **base,
                "estimated_tokens": getattr(exc, "estimated_tokens", None),
                "limit": getattr(exc, "limit", None),
            },
        )
    if kind is ErrorKind.CONFIG:
        log.error(
            "provider_misconfigured",
            request_id=request_id,
            provider=getattr(exc, "provider", None),
            error=str(exc),
        )
        return build_error_response(
            ErrorCode.INTERNAL_ERROR,
            "The model provider is not configured",
            status_code=500,
            retryable=False,
            details={
                **base,
                "reason": "provider_misconfigured",
                "provider": getattr(exc, "provider", None),
            },
        )

    log.exception("pipeline_internal_error", request_id=request_id, stage=stage)
    return build_error_response(
        ErrorCode.INTERNAL_ERROR,
        "Internal error",
        status_code=500,
        retryable=False,
        details=base,
    )
