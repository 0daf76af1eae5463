"""Progress aggregation for a single sync run."""

import logging
from collections.abc import Callable
from dataclasses import replace

from tunecache.application.workers.task_scheduler import TaskScheduler
from tunecache.domain.entities import (
    EntityKind,
    EntityProgress,
    ProgressSnapshot,
    SyncState,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], None]


# Hey future me, ProgressTracker is mutated from many page tasks "at once", but every method
# here is plain synchronous code with no await inside - under asyncio that makes each update
# atomic. Do NOT add an await to any of these methods or that guarantee is gone!
# Counters only go up: totals are added to, current_page takes the max, is_complete flips to
# True once, error keeps the FIRST fatal error of the kind.
class ProgressTracker:
    """Accumulates per-kind counters and pushes snapshots to a callback."""

    def __init__(
        self,
        source_id: str,
        on_progress: ProgressCallback | None = None,
        scheduler: TaskScheduler | None = None,
    ) -> None:
        self._source_id = source_id
        self._on_progress = on_progress
        self._scheduler = scheduler
        self._state = SyncState.IDLE
        self._entities: dict[EntityKind, EntityProgress] = {
            kind: EntityProgress(kind=kind) for kind in EntityKind
        }

    @property
    def state(self) -> SyncState:
        return self._state

    def get(self, kind: EntityKind) -> EntityProgress:
        """Live (mutable) progress entry. Use snapshot() to hand data out."""
        return self._entities[kind]

    def set_state(self, state: SyncState) -> None:
        self._state = state
        self._emit()

    def record_page(self, kind: EntityKind, fetched: int, page: int | None = None) -> None:
        """Count a fetched page.

        ``page`` is the absolute page number of single-chain kinds. Nested kinds
        leave it out and current_page counts pages fetched across all parents.
        """
        entry = self._entities[kind]
        entry.total_fetched += fetched
        if page is None:
            entry.current_page += 1
        else:
            entry.current_page = max(entry.current_page, page)
        self._emit()

    def record_inserted(self, kind: EntityKind, inserted: int) -> None:
        self._entities[kind].total_inserted += inserted
        self._emit()

    def mark_complete(self, kind: EntityKind) -> None:
        entry = self._entities[kind]
        if entry.is_complete:
            return
        entry.is_complete = True
        self._emit()

    def record_error(self, kind: EntityKind, error: BaseException) -> None:
        entry = self._entities[kind]
        if entry.error is None:
            entry.error = f"{type(error).__name__}: {error}"
        self._emit()

    def record_parent_failure(self, kind: EntityKind) -> None:
        self._entities[kind].failed_parents += 1
        self._emit()

    def snapshot(self) -> ProgressSnapshot:
        """Copy of the current progress, safe to keep after the run moves on."""
        return ProgressSnapshot(
            source_id=self._source_id,
            state=self._state,
            entities={kind: replace(p) for kind, p in self._entities.items()},
            queue_size=self._scheduler.size if self._scheduler else 0,
            pending_tasks=self._scheduler.pending if self._scheduler else 0,
        )

    def _emit(self) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(self.snapshot())
        except Exception:
            logger.exception(f"Progress callback for source {self._source_id} raised")
