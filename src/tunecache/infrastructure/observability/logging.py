"""Log setup for tunecache: correlation ids, JSON and console formatters."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

# Hey future me, the correlation ID ties together every log line of ONE sync run. A run fans
# out into hundreds of page tasks, and asyncio copies the current context into each task at
# creation time, so setting the ID once in run_sync() is enough - every task inherits it.
# default="" covers logs emitted outside a run (startup, tests).
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

# Third-party loggers that log per request / per statement at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite", "sqlalchemy.engine")

# LogRecord attribute → JSON key added to every JSON line
_JSON_RECORD_FIELDS = {
    "levelname": "level",
    "name": "logger",
    "module": "module",
    "funcName": "function",
    "lineno": "line",
}


def get_correlation_id() -> str:
    """Correlation ID of the current context, "" outside a sync run."""
    return correlation_id_var.get()


def set_correlation_id(
    correlation_id: str | None = None,
) -> tuple[str, contextvars.Token[str]]:
    """Bind a correlation ID (a fresh UUID if None) to the current context.

    Returns the ID and the token for reset_correlation_id().
    """
    value = correlation_id or str(uuid.uuid4())
    return value, correlation_id_var.set(value)


def reset_correlation_id(token: contextvars.Token[str]) -> None:
    correlation_id_var.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Stamps ``record.correlation_id``. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Human-readable formatter with compact exception chains.

    Hey future me - a failed sync usually shows up as SyncFailedError caused by DriverError
    caused by httpx.ReadTimeout. The stock traceback prints three full stacks glued together
    with "The above exception was the direct cause...". This prints the chain root-first, one
    ╰─► header per exception, and only frames from our own package.

    Example output:
    ERROR   │ tunecache.application.sync.engine:212 │ sync.run.failed
    ╰─► ReadTimeout: timed out
        File "jellyfin_client.py", line 164, in _get_json
          response = await client.get(path, params=params)
    ╰─► DriverError: list_albums failed: timed out
        File "engine.py", line 354, in _list_page
          return list(await fetcher.list_page(self._driver, request, window))
    """

    package_marker = "tunecache"

    @staticmethod
    def _chain(exc: BaseException) -> list[BaseException]:
        seen: list[BaseException] = []
        node: BaseException | None = exc
        while node is not None and node not in seen:
            seen.append(node)
            node = node.__cause__ or node.__context__
        return seen[::-1]

    def _own_frames(self, exc: BaseException) -> list[str]:
        if exc.__traceback__ is None:
            return []
        out: list[str] = []
        for frame in traceback.extract_tb(exc.__traceback__):
            if self.package_marker not in frame.filename or "site-packages" in frame.filename:
                continue
            out.append(
                f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
            )
            if frame.line:
                out.append(f"      {frame.line.strip()}")
        return out

    def formatException(self, ei: Any) -> str:
        exc = ei[1]
        if exc is None:
            return ""
        parts: list[str] = []
        for link in self._chain(exc):
            parts.append(f"╰─► {type(link).__name__}: {link}")
            parts.extend(self._own_frames(link))
        return "\n".join(parts)


class CustomJsonFormatter(JsonFormatter):
    """One JSON object per line, with source location and correlation ID."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        for attribute, key in _JSON_RECORD_FIELDS.items():
            log_record[key] = getattr(record, attribute)

        if getattr(record, "correlation_id", ""):
            log_record["correlation_id"] = record.correlation_id
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    return CompactExceptionFormatter(
        fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
        datefmt="%H:%M:%S",
    )


# Call this ONCE at process start - it replaces the root logger's handlers. tunecache itself
# never calls it, the embedding application decides how logs look.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "tunecache",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (any case)
        json_format: JSON lines instead of the console format
        app_name: Reported in the "Logging configured" record
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(_build_formatter(json_format))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # A big library sync makes thousands of requests, keep these at WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"app_name": app_name, "log_level": log_level, "json_format": json_format},
    )
