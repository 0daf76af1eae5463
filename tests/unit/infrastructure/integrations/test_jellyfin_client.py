"""Tests for JellyfinClient against an httpx.MockTransport."""

from collections.abc import Callable

import httpx
import pytest

from tunecache.config.settings import JellyfinSettings
from tunecache.domain.dtos import PageWindow
from tunecache.domain.exceptions import ConfigurationError, DriverError, NotFoundError
from tunecache.infrastructure.integrations.jellyfin_client import (
    JellyfinClient,
    album_from_item,
    lyrics_from_payload,
)


@pytest.fixture
def jellyfin_settings() -> JellyfinSettings:
    return JellyfinSettings(
        base_url="http://jellyfin.test/",
        user_id="u1",
        access_token="secret",
        max_retries=3,
        retry_initial_delay=0,
    )


@pytest.fixture
def make_client(jellyfin_settings: JellyfinSettings):
    requests: list[httpx.Request] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> JellyfinClient:
        def recording(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        return JellyfinClient(jellyfin_settings, transport=httpx.MockTransport(recording))

    _make.requests = requests
    return _make


class TestMappers:
    """Test payload to DTO mapping."""

    def test_album_prefers_album_artists(self) -> None:
        """Test AlbumArtists wins over ArtistItems."""
        album = album_from_item(
            {
                "Id": "al1",
                "Name": "Blue",
                "ProductionYear": 1971,
                "AlbumArtists": [{"Id": "ar1", "Name": "Joni"}],
                "ArtistItems": [{"Id": "ar1"}, {"Id": "ar2"}],
            }
        )

        assert album.artist_ids == ["ar1"]
        assert album.production_year == 1971
        assert album.extra["Name"] == "Blue"

    def test_lyrics_payload(self) -> None:
        """Test lyric lines are joined and timing detected."""
        lyrics = lyrics_from_payload(
            "t1", {"Lyrics": [{"Text": "one", "Start": 0}, {"Text": "two", "Start": 10}]}
        )

        assert lyrics.lyrics == "one\ntwo"
        assert lyrics.is_synced is True
        assert lyrics_from_payload("t1", {"Lyrics": []}) is None


class TestJellyfinClient:
    """Test requests, retries and error mapping."""

    def test_requires_user_id(self) -> None:
        """Test a missing user id is a configuration error."""
        with pytest.raises(ConfigurationError):
            JellyfinClient(JellyfinSettings(user_id=""))

    async def test_list_albums(self, make_client) -> None:
        """Test album listing sends paging params and auth headers."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "Items": [
                        {"Id": "al1", "Name": "Blue", "AlbumArtists": [{"Id": "ar1"}]}
                    ],
                    "TotalRecordCount": 1,
                },
            )

        async with make_client(handler) as client:
            albums = await client.list_albums(PageWindow(offset=500, limit=250))

        assert [a.id for a in albums] == ["al1"]
        request = make_client.requests[0]
        assert request.url.path == "/Users/u1/Items"
        assert request.url.params["StartIndex"] == "500"
        assert request.url.params["Limit"] == "250"
        assert request.url.params["IncludeItemTypes"] == "MusicAlbum"
        assert request.headers["X-Emby-Token"] == "secret"

    async def test_album_tracks_default_album_id(self, make_client) -> None:
        """Test tracks without AlbumId get the parent album."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["ParentId"] == "al1"
            return httpx.Response(
                200,
                json={"Items": [{"Id": "t1", "Name": "River", "ArtistItems": [{"Id": "ar1"}]}]},
            )

        async with make_client(handler) as client:
            tracks = await client.list_tracks_by_album("al1", PageWindow(0, 100))

        assert tracks[0].album_id == "al1"
        assert tracks[0].artist_ids == ["ar1"]

    async def test_retries_server_errors(self, make_client) -> None:
        """Test a 503 is retried and the next answer used."""
        answers = iter(
            [httpx.Response(503), httpx.Response(200, json={"Items": [{"Id": "ar1", "Name": "A"}]})]
        )

        async with make_client(lambda request: next(answers)) as client:
            artists = await client.list_artists(PageWindow(0, 10))

        assert [a.id for a in artists] == ["ar1"]
        assert len(make_client.requests) == 2

    async def test_gives_up_after_max_retries(self, make_client) -> None:
        """Test persistent 429s end in a DriverError with the status."""
        async with make_client(lambda request: httpx.Response(429)) as client:
            with pytest.raises(DriverError) as exc_info:
                await client.list_playlists(PageWindow(0, 10))

        assert exc_info.value.status_code == 429
        assert exc_info.value.operation == "list_playlists"
        assert len(make_client.requests) == 3

    async def test_transport_errors_retried(self, make_client) -> None:
        """Test connection failures are retried and chained."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(DriverError) as exc_info:
                await client.list_artists(PageWindow(0, 10))

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert len(make_client.requests) == 3

    async def test_auth_error_fails_fast(self, make_client) -> None:
        """Test a 401 is not retried."""
        async with make_client(lambda request: httpx.Response(401)) as client:
            with pytest.raises(DriverError) as exc_info:
                await client.list_albums(PageWindow(0, 10))

        assert exc_info.value.is_auth_error
        assert len(make_client.requests) == 1

    async def test_missing_album_is_not_found(self, make_client) -> None:
        """Test a 404 on album tracks raises NotFoundError."""
        async with make_client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(NotFoundError) as exc_info:
                await client.list_tracks_by_album("gone", PageWindow(0, 10))

        assert exc_info.value.entity_id == "gone"

    async def test_missing_lyrics_is_none(self, make_client) -> None:
        """Test a 404 on lyrics means the track has none."""
        async with make_client(lambda request: httpx.Response(404)) as client:
            assert await client.get_lyrics("t1") is None

        assert make_client.requests[0].url.path == "/Audio/t1/Lyrics"

    async def test_invalid_json(self, make_client) -> None:
        """Test a non-JSON body is a DriverError."""
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(DriverError):
                await client.list_artists(PageWindow(0, 10))

    async def test_similar_albums(self, make_client) -> None:
        """Test similar albums pass the limit and map to AlbumDTOs."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/Items/al1/Similar"
            assert request.url.params["Limit"] == "20"
            return httpx.Response(200, json={"Items": [{"Id": "al2", "Name": "Court"}]})

        async with make_client(handler) as client:
            similar = await client.list_similar_albums("al1", 20)

        assert [a.id for a in similar] == ["al2"]
