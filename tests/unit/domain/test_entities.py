"""Tests for domain entities and exceptions."""

from tunecache.domain.entities import (
    EntityKind,
    SyncCursor,
    SyncState,
    SyncTier,
)
from tunecache.domain.exceptions import DriverError, NotFoundError, SyncError


class TestEntityKind:
    """Test kind tiers."""

    def test_tiers(self) -> None:
        """Test each tier holds the expected kinds in declaration order."""
        assert EntityKind.for_tier(SyncTier.BASIC) == [
            EntityKind.ARTIST,
            EntityKind.ALBUM,
            EntityKind.PLAYLIST,
        ]
        assert EntityKind.for_tier(SyncTier.DEPENDENT) == [
            EntityKind.ALBUM_TRACK,
            EntityKind.PLAYLIST_TRACK,
        ]
        assert EntityKind.for_tier(SyncTier.ENRICHMENT) == [
            EntityKind.SIMILAR_ALBUM,
            EntityKind.LYRICS,
        ]

    def test_flags(self) -> None:
        """Test nesting and fatality follow the tier."""
        assert not EntityKind.ALBUM.is_nested
        assert EntityKind.PLAYLIST_TRACK.is_nested
        assert EntityKind.ALBUM_TRACK.is_fatal_on_error
        assert not EntityKind.LYRICS.is_fatal_on_error


class TestSyncCursor:
    """Test cursor advancement."""

    def test_full_page_keeps_chain_open(self) -> None:
        """Test a full page advances without completing."""
        cursor = SyncCursor.initial("jf", EntityKind.ARTIST, page_size=500)

        advanced = cursor.advanced(500, 500)

        assert advanced.start_index == 500
        assert advanced.completed is False
        assert cursor.start_index == 0

    def test_short_page_completes(self) -> None:
        """Test fewer records than requested ends the chain."""
        cursor = SyncCursor("jf", EntityKind.ALBUM, start_index=1000, page_size=500)

        advanced = cursor.advanced(37, 500)

        assert advanced.start_index == 1037
        assert advanced.completed is True

    def test_mark_completed(self) -> None:
        """Test an empty page completes without moving."""
        cursor = SyncCursor("jf", EntityKind.ALBUM_TRACK, parent_id="a1", start_index=20)

        done = cursor.mark_completed()

        assert done.completed is True
        assert done.start_index == 20
        assert done.parent_id == "a1"


class TestStatesAndErrors:
    """Test states and exception attributes."""

    def test_terminal_states(self) -> None:
        """Test done, failed and stopped are terminal."""
        terminal = {state for state in SyncState if state.is_terminal}

        assert terminal == {SyncState.DONE, SyncState.FAILED, SyncState.STOPPED}

    def test_exception_hierarchy(self) -> None:
        """Test driver and not-found errors are sync errors."""
        error = DriverError("nope", operation="list_albums", status_code=403)

        assert isinstance(error, SyncError)
        assert error.is_auth_error
        assert not DriverError("x", status_code=500).is_auth_error
        assert isinstance(NotFoundError("album", "a1"), SyncError)
        assert NotFoundError("album", "a1").message == "album with id a1 not found"
