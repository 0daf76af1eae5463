"""Per-kind fetch plans for the generic page task.

Hey future me - the engine has ONE page task shape (fetch → persist → advance cursor →
maybe continue) and this module plugs the per-kind details into it. Each PageFetcher knows
which driver call lists a page and how a page lands in the entity store. Nothing else.

A new EntityKind needs a fetcher here AND an entry in FETCHERS, the engine looks kinds up
without a fallback.

Continuations are plain values (PageRequest), not closures - a request can be logged,
compared in tests and rebuilt from a stored cursor.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from tunecache.domain.dtos import AlbumDTO, PageWindow, TrackDTO
from tunecache.domain.entities import EntityKind, Relation
from tunecache.domain.ports import IEntityStore, ISourceDriver

if TYPE_CHECKING:
    from tunecache.application.sync.engine import SyncConfig


@dataclass(frozen=True)
class PageRequest:
    """One page of one fetch chain: (kind, parent) at ``offset``."""

    kind: EntityKind
    offset: int
    parent_id: str = ""

    @property
    def label(self) -> str:
        if self.parent_id:
            return f"{self.kind.value}[{self.parent_id}]@{self.offset}"
        return f"{self.kind.value}@{self.offset}"

    def next(self, fetched: int) -> "PageRequest":
        """Continuation after a full page of ``fetched`` records."""
        return PageRequest(self.kind, self.offset + fetched, self.parent_id)


class PageFetcher(ABC):
    """Fetch plan of one EntityKind."""

    kind: ClassVar[EntityKind]
    # Name of the driver call, used in errors and logs
    operation: ClassVar[str]
    # False = one driver call per parent, the chain completes after it
    paginated: ClassVar[bool] = True

    def page_limit(self, config: "SyncConfig") -> int:
        return config.page_size

    @abstractmethod
    async def list_page(
        self, driver: ISourceDriver, request: PageRequest, window: PageWindow
    ) -> Sequence[Any]:
        """Ask the driver for the records of ``window``."""
        pass

    @abstractmethod
    async def persist(
        self,
        store: IEntityStore,
        source_id: str,
        request: PageRequest,
        records: Sequence[Any],
    ) -> int:
        """Write a non-empty page, return the number of records stored."""
        pass

    async def on_exhausted(
        self, store: IEntityStore, source_id: str, request: PageRequest
    ) -> None:
        """Hook for an empty page at ``request.offset`` (the chain ends there)."""
        return None


class ArtistFetcher(PageFetcher):
    kind = EntityKind.ARTIST
    operation = "list_artists"

    async def list_page(self, driver, request, window):
        return await driver.list_artists(window)

    async def persist(self, store, source_id, request, records):
        return await store.upsert_batch(source_id, self.kind, records)


class AlbumFetcher(PageFetcher):
    kind = EntityKind.ALBUM
    operation = "list_albums"

    async def list_page(self, driver, request, window):
        return await driver.list_albums(window)

    async def persist(self, store, source_id, request, records: Sequence[AlbumDTO]):
        written = await store.upsert_batch(source_id, self.kind, records)
        await store.replace_relations(
            source_id,
            Relation.ALBUM_ARTIST,
            {album.id: album.artist_ids for album in records},
        )
        return written


class PlaylistFetcher(PageFetcher):
    kind = EntityKind.PLAYLIST
    operation = "list_playlists"

    async def list_page(self, driver, request, window):
        return await driver.list_playlists(window)

    async def persist(self, store, source_id, request, records):
        return await store.upsert_batch(source_id, self.kind, records)


async def _persist_tracks(
    store: IEntityStore,
    source_id: str,
    kind: EntityKind,
    tracks: Sequence[TrackDTO],
) -> int:
    written = await store.upsert_batch(source_id, kind, tracks)
    await store.replace_relations(
        source_id,
        Relation.TRACK_ARTIST,
        {track.id: track.artist_ids for track in tracks},
    )
    return written


class AlbumTrackFetcher(PageFetcher):
    kind = EntityKind.ALBUM_TRACK
    operation = "list_tracks_by_album"

    async def list_page(self, driver, request, window):
        return await driver.list_tracks_by_album(request.parent_id, window)

    async def persist(self, store, source_id, request, records):
        return await _persist_tracks(store, source_id, self.kind, records)


# Listen up, playlist membership is the one PAGINATED relation. Page at offset k owns
# positions k.. of the playlist, so it replaces everything from k on and leaves earlier
# pages alone. An empty page at k trims the tail, which handles a playlist that shrank to
# exactly k entries since the last run.
class PlaylistTrackFetcher(PageFetcher):
    kind = EntityKind.PLAYLIST_TRACK
    operation = "list_tracks_by_playlist"

    async def list_page(self, driver, request, window):
        return await driver.list_tracks_by_playlist(request.parent_id, window)

    async def persist(self, store, source_id, request, records):
        written = await _persist_tracks(store, source_id, self.kind, records)
        await store.replace_relations(
            source_id,
            Relation.PLAYLIST_TRACK,
            {request.parent_id: [track.id for track in records]},
            start_position=request.offset,
        )
        return written

    async def on_exhausted(self, store, source_id, request):
        await store.replace_relations(
            source_id,
            Relation.PLAYLIST_TRACK,
            {request.parent_id: []},
            start_position=request.offset,
        )


class SimilarAlbumFetcher(PageFetcher):
    """Similar albums are stored as relations only, the albums themselves may not be
    part of the library."""

    kind = EntityKind.SIMILAR_ALBUM
    operation = "list_similar_albums"
    paginated = False

    def page_limit(self, config: "SyncConfig") -> int:
        return config.similar_albums_limit

    async def list_page(self, driver, request, window):
        return await driver.list_similar_albums(request.parent_id, window.limit)

    async def persist(self, store, source_id, request, records):
        return await store.replace_relations(
            source_id,
            Relation.ALBUM_SIMILAR,
            {request.parent_id: [album.id for album in records]},
        )

    # The source no longer knows any similar album, so the stored list has to go too
    async def on_exhausted(self, store, source_id, request):
        await store.replace_relations(
            source_id, Relation.ALBUM_SIMILAR, {request.parent_id: []}
        )


class LyricsFetcher(PageFetcher):
    kind = EntityKind.LYRICS
    operation = "get_lyrics"
    paginated = False

    def page_limit(self, config: "SyncConfig") -> int:
        return 1

    async def list_page(self, driver, request, window):
        lyrics = await driver.get_lyrics(request.parent_id)
        return [lyrics] if lyrics is not None and lyrics.lyrics else []

    async def persist(self, store, source_id, request, records):
        stored = 0
        for lyrics in records:
            if await store.store_lyrics(source_id, lyrics):
                stored += 1
        return stored


FETCHERS: dict[EntityKind, PageFetcher] = {
    fetcher.kind: fetcher
    for fetcher in (
        ArtistFetcher(),
        AlbumFetcher(),
        PlaylistFetcher(),
        AlbumTrackFetcher(),
        PlaylistTrackFetcher(),
        SimilarAlbumFetcher(),
        LyricsFetcher(),
    )
}


__all__ = [
    "FETCHERS",
    "PageFetcher",
    "PageRequest",
]
