"""Sync engine - drives a catalog sync through its phases.

Hey future me - this is THE core of tunecache!

PHASES (SyncState):
    idle → fetching_basic → fetching_dependent → fetching_enrichment → done
                 │                  │
                 └──── failed ◄─────┘          (stop() at any point → stopped)

1. BASIC: one chain per basic kind (artists, albums, playlists), resumed from its cursor.
2. DEPENDENT: one chain per stored album (tracks) and per stored playlist (tracks). Parents
   are read from the STORE, not from what phase 1 fetched - a previous interrupted run may
   have stored albums that this run didn't see again.
3. ENRICHMENT: similar albums and lyrics for the first `enrichment_limit` parents that are
   not enriched yet. Best effort, errors are counted and never fail the run.

A chain is a sequence of PageRequests for one (kind, parent). Each page task fetches,
persists, advances the cursor and only THEN submits the next page, so pages of one chain
never overlap. Chains of different keys interleave freely under the scheduler's bound.

FAILURE POLICY: basic/dependent errors stop their own chain only (bulkhead), the engine
waits for the phase to drain and then fails with SyncFailedError. Calling run_sync again
resumes from the cursors - there is no retry in here, retries belong to the driver.
"""

import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tunecache.application.sync.fetchers import FETCHERS, PageFetcher, PageRequest
from tunecache.application.sync.progress import ProgressCallback, ProgressTracker
from tunecache.application.workers.task_scheduler import TaskScheduler
from tunecache.config.settings import SyncSettings
from tunecache.domain.dtos import PageWindow
from tunecache.domain.entities import (
    EntityKind,
    ProgressSnapshot,
    SyncCursor,
    SyncState,
    SyncTier,
)
from tunecache.domain.exceptions import (
    ConfigurationError,
    DriverError,
    NotFoundError,
    SyncError,
    SyncFailedError,
)
from tunecache.domain.ports import IEntityStore, ISourceDriver, ISyncCursorStore
from tunecache.infrastructure.observability.logger_template import (
    get_module_logger,
    log_operation,
    log_run_summary,
)
from tunecache.infrastructure.observability.logging import (
    reset_correlation_id,
    set_correlation_id,
)

logger = get_module_logger(__name__)


@dataclass
class SyncConfig:
    """Tuning knobs of one sync run."""

    concurrency: int = 5
    page_size: int = 500
    include_dependents: bool = True
    include_enrichment: bool = True
    # Parents per enrichment kind per run
    enrichment_limit: int = 100
    similar_albums_limit: int = 20
    on_progress: ProgressCallback | None = None

    def __post_init__(self) -> None:
        for name in ("concurrency", "page_size", "similar_albums_limit"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.enrichment_limit < 0:
            raise ConfigurationError(
                f"enrichment_limit must be >= 0, got {self.enrichment_limit}"
            )

    @classmethod
    def from_settings(
        cls, settings: SyncSettings, on_progress: ProgressCallback | None = None
    ) -> "SyncConfig":
        return cls(
            concurrency=settings.concurrency,
            page_size=settings.page_size,
            include_dependents=settings.include_dependents,
            include_enrichment=settings.include_enrichment,
            enrichment_limit=settings.enrichment_limit,
            similar_albums_limit=settings.similar_albums_limit,
            on_progress=on_progress,
        )


class SyncEngine:
    """Single-use orchestrator of one sync run for one source."""

    def __init__(
        self,
        source_id: str,
        driver: ISourceDriver,
        entity_store: IEntityStore,
        cursor_store: ISyncCursorStore,
        config: SyncConfig | None = None,
        fetchers: dict[EntityKind, PageFetcher] | None = None,
    ) -> None:
        self._source_id = source_id
        self._driver = driver
        self._store = entity_store
        self._cursors = cursor_store
        self._config = config or SyncConfig()
        self._fetchers = fetchers or FETCHERS
        self._scheduler = TaskScheduler(concurrency=self._config.concurrency)
        self._progress = ProgressTracker(
            source_id, on_progress=self._config.on_progress, scheduler=self._scheduler
        )
        self._fatal_errors: list[Exception] = []
        self._stop_requested = False
        self._started = False

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def state(self) -> SyncState:
        return self._progress.state

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    def get_progress(self) -> ProgressSnapshot:
        return self._progress.snapshot()

    def stop(self) -> None:
        """Stop launching work. Running page tasks finish, no new phase starts."""
        if self._stop_requested:
            return
        logger.info(f"Stop requested for sync of source {self._source_id}")
        self._stop_requested = True
        self._scheduler.stop()

    async def run(self) -> ProgressSnapshot:
        """Drive all phases. Returns the final snapshot (state done or stopped).

        Raises:
            SyncFailedError: A basic or dependent chain failed
            SyncError: The engine was already run
        """
        if self._started:
            raise SyncError(f"Sync engine for source {self._source_id} already ran")
        self._started = True
        start = time.monotonic()

        try:
            async with log_operation(logger, "sync.run", source_id=self._source_id):
                await self._run_phases()
        finally:
            snapshot = self._progress.snapshot()
            log_run_summary(
                logger,
                "sync",
                fetched_total=sum(p.total_fetched for p in snapshot.entities.values()),
                inserted_total=sum(p.total_inserted for p in snapshot.entities.values()),
                errors_total=len(self._fatal_errors),
                duration_seconds=time.monotonic() - start,
                extra_stats={"source_id": self._source_id, "state": snapshot.state.value},
            )
        return snapshot

    async def _run_phases(self) -> None:
        if not await self._run_phase(SyncState.FETCHING_BASIC, self._seed_basic):
            return

        if not self._config.include_dependents:
            logger.info("Dependent kinds disabled, skipping dependent and enrichment phases")
            self._finish()
            return
        if not await self._run_phase(SyncState.FETCHING_DEPENDENT, self._seed_dependent):
            return

        if not self._config.include_enrichment:
            logger.info("Enrichment disabled, skipping enrichment phase")
            self._finish()
            return
        if not await self._run_phase(SyncState.FETCHING_ENRICHMENT, self._seed_enrichment):
            return

        self._finish()

    async def _run_phase(
        self, state: SyncState, seed: Callable[[], Awaitable[None]]
    ) -> bool:
        """Seed and drain one phase. False when the run ended (stopped)."""
        if self._stop_requested:
            self._progress.set_state(SyncState.STOPPED)
            return False

        self._progress.set_state(state)
        try:
            async with log_operation(
                logger, f"sync.{state.value}", source_id=self._source_id
            ):
                try:
                    await seed()
                finally:
                    await self._scheduler.drain()
        except Exception:
            self._progress.set_state(SyncState.FAILED)
            raise

        if self._fatal_errors:
            self._progress.set_state(SyncState.FAILED)
            first = self._fatal_errors[0]
            raise SyncFailedError(
                f"Sync of source {self._source_id} failed during {state.value}: {first}",
                phase=state,
                failures=list(self._fatal_errors),
            ) from first

        if self._stop_requested:
            self._progress.set_state(SyncState.STOPPED)
            return False

        self._complete_tier(state)
        return True

    def _finish(self) -> None:
        self._progress.set_state(SyncState.DONE)

    def _complete_tier(self, state: SyncState) -> None:
        # Basic kinds are marked complete by their chain. Nested kinds are complete once
        # the phase drained without a fatal error, enrichment only if no parent failed.
        if state is SyncState.FETCHING_DEPENDENT:
            for kind in EntityKind.for_tier(SyncTier.DEPENDENT):
                self._progress.mark_complete(kind)
        elif state is SyncState.FETCHING_ENRICHMENT:
            for kind in EntityKind.for_tier(SyncTier.ENRICHMENT):
                if self._progress.get(kind).failed_parents == 0:
                    self._progress.mark_complete(kind)

    # ------------------------------------------------------------------ seeding

    async def _seed_basic(self) -> None:
        for kind in EntityKind.for_tier(SyncTier.BASIC):
            try:
                cursor = await self._cursors.read_cursor(self._source_id, kind)
            except SyncError as e:
                self._handle_task_error(PageRequest(kind, 0), e)
                continue

            if cursor is not None and cursor.completed:
                logger.debug(f"{kind.value} already complete for source {self._source_id}")
                self._progress.mark_complete(kind)
                continue

            if cursor is None:
                cursor = SyncCursor.initial(self._source_id, kind, self._page_limit(kind))
            if cursor.start_index:
                logger.info(f"Resuming {kind.value} sync at offset {cursor.start_index}")
            self._submit(PageRequest(kind, cursor.start_index))

    async def _seed_dependent(self) -> None:
        for kind in EntityKind.for_tier(SyncTier.DEPENDENT):
            await self._seed_nested(kind, limit=None)

    async def _seed_enrichment(self) -> None:
        for kind in EntityKind.for_tier(SyncTier.ENRICHMENT):
            await self._seed_nested(kind, limit=self._config.enrichment_limit)

    async def _seed_nested(self, kind: EntityKind, limit: int | None) -> None:
        try:
            parent_ids = await self._store.query_parents(self._source_id, kind)
            cursors = await self._cursors.read_cursors(self._source_id, kind)
        except SyncError as e:
            self._handle_task_error(PageRequest(kind, 0), e)
            return

        submitted = 0
        for parent_id in parent_ids:
            if limit is not None and submitted >= limit:
                break
            cursor = cursors.get(parent_id)
            if cursor is not None and cursor.completed:
                continue
            if cursor is None:
                cursor = SyncCursor.initial(
                    self._source_id, kind, self._page_limit(kind), parent_id=parent_id
                )
            self._submit(PageRequest(kind, cursor.start_index, parent_id))
            submitted += 1

        logger.info(
            f"Scheduled {submitted} {kind.value} chain(s) for {len(parent_ids)} parent(s) "
            f"of source {self._source_id}"
        )

    # ------------------------------------------------------------------ page task

    def _page_limit(self, kind: EntityKind) -> int:
        return self._fetchers[kind].page_limit(self._config)

    def _submit(self, request: PageRequest) -> None:
        self._scheduler.submit(
            lambda: self._fetch_page(request),
            label=request.label,
            on_error=lambda error: self._handle_task_error(request, error),
        )

    async def _fetch_page(self, request: PageRequest) -> None:
        fetcher = self._fetchers[request.kind]
        limit = self._page_limit(request.kind)
        window = PageWindow(offset=request.offset, limit=limit)
        cursor = SyncCursor(
            source_id=self._source_id,
            kind=request.kind,
            parent_id=request.parent_id,
            start_index=request.offset,
            page_size=limit,
        )

        records = await self._list_page(fetcher, request, window)

        if not records:
            await fetcher.on_exhausted(self._store, self._source_id, request)
            await self._cursors.write_cursor(cursor.mark_completed())
            self._chain_finished(request)
            return

        self._progress.record_page(
            request.kind,
            len(records),
            page=None if request.kind.is_nested else request.offset // limit + 1,
        )
        inserted = await fetcher.persist(self._store, self._source_id, request, records)
        self._progress.record_inserted(request.kind, inserted)

        advanced = cursor.advanced(len(records), limit)
        if not fetcher.paginated:
            advanced = advanced.mark_completed()
        await self._cursors.write_cursor(advanced)

        if advanced.completed:
            self._chain_finished(request)
        elif self._stop_requested:
            logger.debug(f"Not continuing {request.label}, sync is stopping")
        else:
            self._submit(request.next(len(records)))

    async def _list_page(
        self, fetcher: PageFetcher, request: PageRequest, window: PageWindow
    ) -> list:
        try:
            return list(await fetcher.list_page(self._driver, request, window))
        except (DriverError, NotFoundError):
            raise
        except Exception as e:
            raise DriverError(
                f"{fetcher.operation} failed for {request.label}: {e}",
                operation=fetcher.operation,
            ) from e

    def _chain_finished(self, request: PageRequest) -> None:
        logger.debug(f"Chain {request.label} complete")
        if not request.kind.is_nested:
            self._progress.mark_complete(request.kind)

    def _handle_task_error(self, request: PageRequest, error: Exception) -> None:
        kind = request.kind

        if isinstance(error, NotFoundError) and request.parent_id:
            logger.warning(
                f"{kind.value}: parent {request.parent_id} vanished from source "
                f"{self._source_id}, skipping"
            )
            self._progress.record_parent_failure(kind)
            return

        if not kind.is_fatal_on_error:
            logger.info(f"Skipping {request.label}: {error}")
            self._progress.record_parent_failure(kind)
            return

        logger.error(f"Chain {request.label} of source {self._source_id} failed: {error}")
        self._progress.record_error(kind, error)
        self._fatal_errors.append(error)


async def run_sync(
    source_id: str,
    driver: ISourceDriver,
    entity_store: IEntityStore,
    cursor_store: ISyncCursorStore,
    config: SyncConfig | None = None,
) -> ProgressSnapshot:
    """Synchronize one source into the local store.

    Resolves with the final snapshot once all enabled phases are done. Every
    log line of the run carries the same correlation id.

    Raises:
        SyncFailedError: A basic or dependent kind failed. The cause is the
            first fatal error. Calling run_sync again resumes from the cursors.
    """
    _, token = set_correlation_id(f"sync-{source_id}-{uuid.uuid4().hex[:8]}")
    try:
        engine = SyncEngine(source_id, driver, entity_store, cursor_store, config)
        return await engine.run()
    finally:
        reset_correlation_id(token)


__all__ = [
    "SyncConfig",
    "SyncEngine",
    "run_sync",
]
