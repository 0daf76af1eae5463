"""Observability infrastructure for structured logging."""

from tunecache.infrastructure.observability.logger_template import (
    get_module_logger,
    log_operation,
    log_run_summary,
)
from tunecache.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "get_module_logger",
    "log_operation",
    "log_run_summary",
    "reset_correlation_id",
    "set_correlation_id",
]
