"""Retry of store writes that lost the SQLite write lock.

Hey future me - SQLite allows ONE writer at a time, WAL mode included. A sync runs up to
`concurrency` page tasks and nearly every one ends in a write, so "database is locked" /
SQLITE_BUSY is part of normal operation here. The lock holder is another short page write,
waiting a moment and running the whole operation again is enough.

    @with_db_retry()
    async def _upsert(self, model_cls, source_id, by_id) -> int:
        async with self._session_factory() as session:
            ...

The wrapped coroutine has to open its OWN session, a retry starts it from scratch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from functools import wraps
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Substrings of sqlite3 messages for SQLITE_BUSY / SQLITE_LOCKED
_LOCK_MARKERS = ("locked", "busy")


def is_lock_error(exception: BaseException) -> bool:
    """Whether ``exception`` is an SQLite lock conflict worth retrying."""
    if not isinstance(exception, OperationalError):
        return False
    message = str(exception).lower()
    return any(marker in message for marker in _LOCK_MARKERS)


def _backoff(initial: float, factor: float, cap: float) -> Iterator[float]:
    delay = initial
    while True:
        yield min(delay, cap)
        delay *= factor


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Re-run a store operation when it hits an SQLite lock.

    Waits ``initial_delay`` after the first conflict and multiplies the wait
    by ``backoff_factor`` after each further one, never waiting longer than
    ``max_delay``. Non-lock errors and the conflict of the last attempt
    propagate unchanged.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = func.__qualname__

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delays = _backoff(initial_delay, backoff_factor, max_delay)
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e):
                        raise
                    if attempt >= max_attempts:
                        logger.error(
                            "%s still locked after %d attempts, giving up", name, attempt
                        )
                        raise
                    delay = next(delays)
                    logger.warning(
                        "%s hit a database lock (attempt %d/%d), retrying in %.2fs",
                        name,
                        attempt,
                        max_attempts,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
