"""LLM adapter contract, model selection, retry and shared caches."""

from ceedraft.providers.base import (
    CallOpts,
    DraftAdapter,
    DraftGraphArgs,
    DraftGraphResult,
    ErrorKind,
    RepairAdapter,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamNonJsonError,
    UpstreamTimeoutError,
    Usage,
)
from ceedraft.providers.cache import AdapterCache, CachingValidator, LruTtlCache
from ceedraft.providers.retry import RetryPolicy, call_with_retry
from ceedraft.providers.selection import (
    ModelSelection,
    ModelTask,
    SelectionSource,
    select_model,
)

__all__ = [
    "AdapterCache",
    "CachingValidator",
    "CallOpts",
    "DraftAdapter",
    "DraftGraphArgs",
    "DraftGraphResult",
    "ErrorKind",
    "LruTtlCache",
    "ModelSelection",
    "ModelTask",
    "RepairAdapter",
    "RetryPolicy",
    "SelectionSource",
    "UpstreamError",
    "UpstreamHTTPError",
    "UpstreamNonJsonError",
    "UpstreamTimeoutError",
    "Usage",
    "call_with_retry",
    "select_model",
]
