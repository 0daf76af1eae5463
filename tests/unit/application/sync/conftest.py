"""Fixtures for sync engine tests: an in-process source driver with a scripted catalog."""

import asyncio

import pytest

from tunecache.domain.dtos import (
    AlbumDTO,
    ArtistDTO,
    LyricsDTO,
    PageWindow,
    PlaylistDTO,
    TrackDTO,
)
from tunecache.domain.ports import ISourceDriver


class FakeSourceDriver(ISourceDriver):
    """Serves slices of in-memory lists and records every call.

    ``errors`` maps an operation name, or an (operation, parent_id) pair, to the
    exception that call raises. ``endless`` holds operations whose pages are
    always full, generated on the fly.
    """

    def __init__(self) -> None:
        self.artists: list[ArtistDTO] = []
        self.albums: list[AlbumDTO] = []
        self.playlists: list[PlaylistDTO] = []
        self.album_tracks: dict[str, list[TrackDTO]] = {}
        self.playlist_tracks: dict[str, list[TrackDTO]] = {}
        self.similar: dict[str, list[AlbumDTO]] = {}
        self.lyrics: dict[str, LyricsDTO] = {}
        self.errors: dict[str | tuple[str, str], Exception] = {}
        self.endless: set[str] = set()
        self.delay = 0.0
        self.calls: list[tuple[str, str, int, int]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_call = None

    def calls_to(self, operation: str) -> list[tuple[str, int, int]]:
        return [(p, o, lim) for op, p, o, lim in self.calls if op == operation]

    async def _serve(self, operation, parent_id, items, offset, limit):
        self.calls.append((operation, parent_id, offset, limit))
        if self.on_call is not None:
            self.on_call(operation, parent_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            error = self.errors.get((operation, parent_id)) or self.errors.get(operation)
            if error is not None:
                raise error
            if operation in self.endless:
                return [
                    ArtistDTO(id=f"endless-{i:06d}", name=f"Endless {i}")
                    for i in range(offset, offset + limit)
                ]
            return list(items[offset : offset + limit])
        finally:
            self.in_flight -= 1

    async def list_artists(self, window: PageWindow) -> list[ArtistDTO]:
        return await self._serve("list_artists", "", self.artists, window.offset, window.limit)

    async def list_albums(self, window: PageWindow) -> list[AlbumDTO]:
        return await self._serve("list_albums", "", self.albums, window.offset, window.limit)

    async def list_playlists(self, window: PageWindow) -> list[PlaylistDTO]:
        return await self._serve(
            "list_playlists", "", self.playlists, window.offset, window.limit
        )

    async def list_tracks_by_album(self, album_id: str, window: PageWindow) -> list[TrackDTO]:
        return await self._serve(
            "list_tracks_by_album",
            album_id,
            self.album_tracks.get(album_id, []),
            window.offset,
            window.limit,
        )

    async def list_tracks_by_playlist(
        self, playlist_id: str, window: PageWindow
    ) -> list[TrackDTO]:
        return await self._serve(
            "list_tracks_by_playlist",
            playlist_id,
            self.playlist_tracks.get(playlist_id, []),
            window.offset,
            window.limit,
        )

    async def list_similar_albums(self, album_id: str, limit: int) -> list[AlbumDTO]:
        return await self._serve(
            "list_similar_albums", album_id, self.similar.get(album_id, []), 0, limit
        )

    async def get_lyrics(self, track_id: str) -> LyricsDTO | None:
        found = await self._serve(
            "get_lyrics",
            track_id,
            [self.lyrics[track_id]] if track_id in self.lyrics else [],
            0,
            1,
        )
        return found[0] if found else None


@pytest.fixture
def driver() -> FakeSourceDriver:
    """Empty catalog, fill it per test."""
    return FakeSourceDriver()


@pytest.fixture
def catalog_driver() -> FakeSourceDriver:
    """Small but complete library.

    5 artists, 3 albums with 2 tracks each, 2 playlists (3 and 1 tracks),
    similar albums for album-1 and lyrics for track-1-1.
    """
    fake = FakeSourceDriver()
    fake.artists = [ArtistDTO(id=f"artist-{i}", name=f"Artist {i}") for i in range(1, 6)]
    fake.albums = [
        AlbumDTO(id=f"album-{i}", name=f"Album {i}", artist_ids=[f"artist-{i}"])
        for i in range(1, 4)
    ]
    for i in range(1, 4):
        fake.album_tracks[f"album-{i}"] = [
            TrackDTO(
                id=f"track-{i}-{n}",
                name=f"Track {i}.{n}",
                album_id=f"album-{i}",
                index_number=n,
                artist_ids=[f"artist-{i}"],
            )
            for n in (1, 2)
        ]
    fake.playlists = [
        PlaylistDTO(id="playlist-1", name="Mix", child_count=3),
        PlaylistDTO(id="playlist-2", name="Single", child_count=1),
    ]
    fake.playlist_tracks = {
        "playlist-1": [
            fake.album_tracks["album-1"][0],
            fake.album_tracks["album-2"][1],
            fake.album_tracks["album-3"][0],
        ],
        "playlist-2": [fake.album_tracks["album-2"][0]],
    }
    fake.similar = {
        "album-1": [
            AlbumDTO(id="album-2", name="Album 2"),
            AlbumDTO(id="remote-only", name="Not In Library"),
        ]
    }
    fake.lyrics = {"track-1-1": LyricsDTO(track_id="track-1-1", lyrics="la la\nla", is_synced=True)}
    return fake
