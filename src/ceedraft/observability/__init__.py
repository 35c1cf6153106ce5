"""Observability helpers: structured logging with request-scoped context."""

from ceedraft.observability.logging import (
    bind_request_context,
    clear_request_context,
    close_file_logging,
    configure_logging,
    get_log_dir,
    get_logger,
)

__all__ = [
    "bind_request_context",
    "clear_request_context",
    "close_file_logging",
    "configure_logging",
    "get_log_dir",
    "get_logger",
]
