"""Logging helpers shared by the sync phases.

Hey future me - use these so every phase and every run logs the same record names!

    logger = get_module_logger(__name__)

    async with log_operation(logger, "sync.fetching_basic", source_id="jf-1"):
        await scheduler.drain()

    log_run_summary(logger, "sync", fetched_total=1200, inserted_total=1200,
                    errors_total=0, duration_seconds=14.2)
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


def get_module_logger(name: str) -> logging.Logger:
    """Logger for a module, pass __name__ so level filtering by package works."""
    return logging.getLogger(name)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


# Yo, the **context kwargs end up as `extra` fields on all three records, so with JSON logs
# a whole run can be filtered by source_id. An exception is logged with its traceback and
# RE-RAISED, this never swallows anything.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Wrap a block in ``<operation>.started`` / ``.completed`` / ``.failed`` records.

    ``.completed`` and ``.failed`` carry ``duration_ms``. ``.failed`` adds
    ``error`` and ``error_type`` and is logged at ERROR with the traceback.
    """
    started = time.monotonic()
    logger.info(f"{operation}.started", extra=context)
    try:
        yield
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            exc_info=True,
            extra={
                **context,
                "duration_ms": _elapsed_ms(started),
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise
    logger.info(
        f"{operation}.completed",
        extra={**context, "duration_ms": _elapsed_ms(started)},
    )


def log_run_summary(
    logger: logging.Logger,
    run_name: str,
    fetched_total: int,
    inserted_total: int,
    errors_total: int,
    duration_seconds: float,
    extra_stats: dict[str, Any] | None = None,
) -> None:
    """One ``<run_name>.summary`` record per run, WARNING if anything failed."""
    fields: dict[str, Any] = dict(extra_stats or {})
    fields.update(
        fetched_total=fetched_total,
        inserted_total=inserted_total,
        errors_total=errors_total,
        duration_seconds=round(duration_seconds, 3),
    )
    logger.log(
        logging.WARNING if errors_total > 0 else logging.INFO,
        f"{run_name}.summary",
        extra=fields,
    )
