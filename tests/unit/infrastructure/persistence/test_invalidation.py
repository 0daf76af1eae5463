"""Tests for InvalidationNotifier."""

import logging

from tunecache.infrastructure.persistence.invalidation import InvalidationNotifier


class TestInvalidationNotifier:
    """Test subscription filtering."""

    def test_unfiltered_listener_sees_everything(self) -> None:
        """Test a listener without tables receives every change."""
        notifier = InvalidationNotifier()
        seen = []
        notifier.subscribe(seen.append)

        notifier.notify(["tracks"])
        notifier.notify({"albums", "album_artists"})

        assert seen == [frozenset({"tracks"}), frozenset({"albums", "album_artists"})]

    def test_table_filter(self) -> None:
        """Test a filtered listener only hears about overlapping tables."""
        notifier = InvalidationNotifier()
        seen = []
        notifier.subscribe(seen.append, tables=["playlists", "playlist_tracks"])

        notifier.notify(["tracks"])
        notifier.notify(["playlist_tracks"])

        assert seen == [frozenset({"playlist_tracks"})]

    def test_empty_change_is_ignored(self) -> None:
        """Test notify() with no tables calls nobody."""
        notifier = InvalidationNotifier()
        seen = []
        notifier.subscribe(seen.append)

        notifier.notify([])

        assert seen == []

    def test_unsubscribe(self) -> None:
        """Test the returned callable removes the listener."""
        notifier = InvalidationNotifier()
        seen = []
        unsubscribe = notifier.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        notifier.notify(["artists"])

        assert seen == []
        assert notifier.subscriber_count == 0

    def test_failing_listener_isolated(self, caplog) -> None:
        """Test one broken listener doesn't starve the others."""
        notifier = InvalidationNotifier()
        seen = []

        def broken(tables) -> None:
            raise RuntimeError("stale view")

        notifier.subscribe(broken)
        notifier.subscribe(seen.append)

        with caplog.at_level(logging.ERROR):
            notifier.notify(["artists"])

        assert seen == [frozenset({"artists"})]
        assert "Invalidation listener failed" in caplog.text
