"""Tests for ProgressTracker."""

import asyncio
import logging

from tunecache.application.sync.progress import ProgressTracker
from tunecache.application.workers.task_scheduler import TaskScheduler
from tunecache.domain.entities import EntityKind, SyncState


class TestProgressTracker:
    """Test progress aggregation."""

    def test_starts_idle_with_all_kinds(self) -> None:
        """Test a fresh tracker reports every kind at zero."""
        snapshot = ProgressTracker("jf-1").snapshot()

        assert snapshot.state is SyncState.IDLE
        assert set(snapshot.entities) == set(EntityKind)
        assert all(p.total_fetched == 0 for p in snapshot.entities.values())

    def test_record_page_with_page_number(self) -> None:
        """Test basic kinds keep the highest page number seen."""
        tracker = ProgressTracker("jf-1")

        tracker.record_page(EntityKind.ALBUM, 500, page=3)
        tracker.record_page(EntityKind.ALBUM, 500, page=2)

        entry = tracker.get(EntityKind.ALBUM)
        assert entry.total_fetched == 1000
        assert entry.current_page == 3

    def test_record_page_counts_nested_pages(self) -> None:
        """Test nested kinds count pages across parents."""
        tracker = ProgressTracker("jf-1")

        tracker.record_page(EntityKind.ALBUM_TRACK, 12)
        tracker.record_page(EntityKind.ALBUM_TRACK, 9)

        assert tracker.get(EntityKind.ALBUM_TRACK).current_page == 2

    def test_first_error_wins(self) -> None:
        """Test later errors don't overwrite the first one."""
        tracker = ProgressTracker("jf-1")

        tracker.record_error(EntityKind.ARTIST, RuntimeError("first"))
        tracker.record_error(EntityKind.ARTIST, ValueError("second"))

        assert tracker.get(EntityKind.ARTIST).error == "RuntimeError: first"

    def test_mark_complete_emits_once(self) -> None:
        """Test completing a kind twice only notifies once."""
        snapshots = []
        tracker = ProgressTracker("jf-1", on_progress=snapshots.append)

        tracker.mark_complete(EntityKind.PLAYLIST)
        tracker.mark_complete(EntityKind.PLAYLIST)

        assert len(snapshots) == 1
        assert snapshots[0][EntityKind.PLAYLIST].is_complete is True

    def test_snapshot_is_a_copy(self) -> None:
        """Test snapshots don't change when the run moves on."""
        tracker = ProgressTracker("jf-1")
        tracker.record_inserted(EntityKind.LYRICS, 1)
        snapshot = tracker.snapshot()

        tracker.record_inserted(EntityKind.LYRICS, 4)
        tracker.record_parent_failure(EntityKind.LYRICS)

        assert snapshot[EntityKind.LYRICS].total_inserted == 1
        assert snapshot[EntityKind.LYRICS].failed_parents == 0
        assert tracker.get(EntityKind.LYRICS).total_inserted == 5

    async def test_snapshot_reads_scheduler_counts(self) -> None:
        """Test queue_size and pending_tasks come from the scheduler."""
        scheduler = TaskScheduler(concurrency=1)
        tracker = ProgressTracker("jf-1", scheduler=scheduler)
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        scheduler.submit(blocked)
        scheduler.submit(blocked)
        snapshot = tracker.snapshot()
        gate.set()
        await scheduler.drain()

        assert snapshot.pending_tasks == 1
        assert snapshot.queue_size == 1

    def test_callback_errors_are_logged(self, caplog) -> None:
        """Test a raising callback doesn't propagate."""

        def broken(snapshot) -> None:
            raise RuntimeError("ui went away")

        tracker = ProgressTracker("jf-1", on_progress=broken)

        with caplog.at_level(logging.ERROR):
            tracker.set_state(SyncState.FETCHING_BASIC)

        assert tracker.state is SyncState.FETCHING_BASIC
        assert "Progress callback for source jf-1 raised" in caplog.text
