"""Table-level change notifications for live queries.

Hey future me - the store calls notify() after every COMMITTED write with the names of the
tables it touched. A live-query layer subscribes here and re-runs the queries that read
those tables. Listeners run synchronously inside the writing task, keep them cheap (set a
flag, schedule a refresh) and never await anything in them.
"""

import logging
from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[frozenset[str]], None]


class InvalidationNotifier:
    """Fan-out of "these tables changed" events."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[frozenset[str] | None, InvalidationListener]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        listener: InvalidationListener,
        tables: Iterable[str] | None = None,
    ) -> Callable[[], None]:
        """Register a listener, optionally only for some tables.

        Returns a callable that removes the subscription again.
        """
        entry = (frozenset(tables) if tables is not None else None, listener)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def notify(self, tables: Iterable[str]) -> None:
        changed = frozenset(tables)
        if not changed:
            return
        for watched, listener in list(self._subscribers):
            if watched is not None and watched.isdisjoint(changed):
                continue
            try:
                listener(changed)
            except Exception:
                logger.exception(f"Invalidation listener failed for tables {sorted(changed)}")
