"""Jellyfin HTTP client implementing the source driver port."""

import asyncio
import logging
from typing import Any

import httpx

from tunecache.config.settings import JellyfinSettings
from tunecache.domain.dtos import (
    AlbumDTO,
    ArtistDTO,
    LyricsDTO,
    PageWindow,
    PlaylistDTO,
    TrackDTO,
)
from tunecache.domain.exceptions import ConfigurationError, DriverError, NotFoundError
from tunecache.domain.ports import ISourceDriver

logger = logging.getLogger(__name__)


def _artist_ids(item: dict[str, Any]) -> list[str]:
    return [a["Id"] for a in item.get("ArtistItems") or [] if a.get("Id")]


def artist_from_item(item: dict[str, Any]) -> ArtistDTO:
    return ArtistDTO(
        id=item["Id"],
        name=item.get("Name") or "",
        is_folder=bool(item.get("IsFolder", False)),
        extra=item,
    )


def album_from_item(item: dict[str, Any]) -> AlbumDTO:
    # AlbumArtists is the album-level credit, ArtistItems the per-track union. Prefer the former.
    artists = item.get("AlbumArtists") or item.get("ArtistItems") or []
    return AlbumDTO(
        id=item["Id"],
        name=item.get("Name") or "",
        production_year=item.get("ProductionYear"),
        is_folder=bool(item.get("IsFolder", True)),
        album_artist=item.get("AlbumArtist"),
        date_created=item.get("DateCreated"),
        artist_ids=[a["Id"] for a in artists if a.get("Id")],
        extra=item,
    )


def track_from_item(item: dict[str, Any]) -> TrackDTO:
    return TrackDTO(
        id=item["Id"],
        name=item.get("Name") or "",
        album_id=item.get("AlbumId"),
        album=item.get("Album"),
        album_artist=item.get("AlbumArtist"),
        production_year=item.get("ProductionYear"),
        index_number=item.get("IndexNumber"),
        parent_index_number=item.get("ParentIndexNumber"),
        run_time_ticks=item.get("RunTimeTicks"),
        artist_ids=_artist_ids(item),
        extra=item,
    )


def playlist_from_item(item: dict[str, Any]) -> PlaylistDTO:
    return PlaylistDTO(
        id=item["Id"],
        name=item.get("Name") or "",
        can_delete=bool(item.get("CanDelete", False)),
        child_count=item.get("ChildCount"),
        extra=item,
    )


# Listen up, /Audio/{id}/Lyrics answers {"Metadata": {...}, "Lyrics": [{"Text": ..., "Start": ticks}]}.
# Start is only present for synced (LRC) lyrics. We flatten to plain text, one line per entry.
def lyrics_from_payload(track_id: str, payload: dict[str, Any]) -> LyricsDTO | None:
    lines = payload.get("Lyrics") or []
    if not lines:
        return None
    return LyricsDTO(
        track_id=track_id,
        lyrics="\n".join(line.get("Text") or "" for line in lines),
        is_synced=any(line.get("Start") is not None for line in lines),
    )


class JellyfinClient(ISourceDriver):
    """HTTP client for the Jellyfin API with retry and exponential backoff."""

    RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})

    # Hey future me, the sync engine does NOT retry - whatever this client raises is final for
    # that page and (for basic/dependent kinds) fails the run. So all the patience lives here:
    # transport errors, 429 and 5xx are retried with 100ms → 200ms → 400ms ... backoff. Other
    # 4xx fail fast, retrying a 401 just hammers the server. `transport` exists for tests
    # (httpx.MockTransport), production leaves it None.
    def __init__(
        self,
        settings: JellyfinSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.user_id:
            raise ConfigurationError("Jellyfin user_id is not configured")
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "JellyfinClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            s = self.settings
            authorization = (
                f'MediaBrowser Client="{s.client_name}", Device="{s.client_name}", '
                f'DeviceId="{s.device_id}", Version="{s.client_version}"'
            )
            self._client = httpx.AsyncClient(
                base_url=s.base_url.rstrip("/"),
                headers={
                    "X-Emby-Token": s.access_token,
                    "X-Emby-Authorization": authorization,
                    "Accept": "application/json",
                },
                timeout=s.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any],
        operation: str,
        not_found: tuple[str, str] | None = None,
    ) -> dict[str, Any] | None:
        """GET with retries.

        Returns None on 404 unless ``not_found`` names the entity, in which
        case NotFoundError is raised.
        """
        client = await self._get_client()
        delay = self.settings.retry_initial_delay
        max_attempts = self.settings.max_retries
        last_error: DriverError | None = None
        last_cause: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                response = await client.get(path, params=params)
            except httpx.TransportError as e:
                last_error = DriverError(f"{operation} failed: {e}", operation=operation)
                last_cause = e
            else:
                status = response.status_code
                if status == 404:
                    if not_found is not None:
                        raise NotFoundError(*not_found)
                    return None
                if status in self.RETRYABLE_STATUS or status >= 500:
                    last_error = DriverError(
                        f"{operation} returned HTTP {status}",
                        operation=operation,
                        status_code=status,
                    )
                    last_cause = None
                    delay = max(delay, self._retry_after(response))
                elif response.is_error:
                    raise DriverError(
                        f"{operation} returned HTTP {status}",
                        operation=operation,
                        status_code=status,
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise DriverError(
                            f"{operation} returned invalid JSON: {e}",
                            operation=operation,
                            status_code=status,
                        ) from e

            if attempt < max_attempts:
                logger.warning(
                    f"Jellyfin {operation} attempt {attempt}/{max_attempts} failed "
                    f"({last_error}), retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                delay *= 2

        assert last_error is not None
        logger.error(f"Jellyfin {operation} failed after {max_attempts} attempts")
        raise last_error from last_cause

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        value = response.headers.get("Retry-After")
        if value is None:
            return 0.0
        try:
            return float(value)
        except ValueError:
            return 0.0

    @staticmethod
    def _page_params(window: PageWindow) -> dict[str, Any]:
        return {"StartIndex": window.offset, "Limit": window.limit}

    def _user_items_path(self) -> str:
        return f"/Users/{self.settings.user_id}/Items"

    async def _list_items(
        self,
        path: str,
        params: dict[str, Any],
        operation: str,
        not_found: tuple[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        payload = await self._get_json(path, params, operation, not_found)
        if payload is None:
            return []
        return list(payload.get("Items") or [])

    # ------------------------------------------------------------------ ISourceDriver

    async def list_artists(self, window: PageWindow) -> list[ArtistDTO]:
        items = await self._list_items(
            "/Artists",
            {
                "UserId": self.settings.user_id,
                "Recursive": "true",
                "SortBy": "SortName",
                "SortOrder": "Ascending",
                **self._page_params(window),
            },
            "list_artists",
        )
        return [artist_from_item(item) for item in items]

    async def list_albums(self, window: PageWindow) -> list[AlbumDTO]:
        items = await self._list_items(
            self._user_items_path(),
            {
                "IncludeItemTypes": "MusicAlbum",
                "Recursive": "true",
                "Fields": "ProductionYear,DateCreated",
                "SortBy": "SortName",
                "SortOrder": "Ascending",
                **self._page_params(window),
            },
            "list_albums",
        )
        return [album_from_item(item) for item in items]

    async def list_playlists(self, window: PageWindow) -> list[PlaylistDTO]:
        items = await self._list_items(
            self._user_items_path(),
            {
                "IncludeItemTypes": "Playlist",
                "Recursive": "true",
                "MediaTypes": "Audio",
                "Fields": "CanDelete,ChildCount",
                "SortBy": "SortName",
                "SortOrder": "Ascending",
                **self._page_params(window),
            },
            "list_playlists",
        )
        return [playlist_from_item(item) for item in items]

    async def list_tracks_by_album(
        self, album_id: str, window: PageWindow
    ) -> list[TrackDTO]:
        items = await self._list_items(
            self._user_items_path(),
            {
                "IncludeItemTypes": "Audio",
                "Recursive": "true",
                "ParentId": album_id,
                "SortBy": "ParentIndexNumber,IndexNumber,SortName",
                "SortOrder": "Ascending",
                **self._page_params(window),
            },
            "list_tracks_by_album",
            not_found=("album", album_id),
        )
        tracks = [track_from_item(item) for item in items]
        for track in tracks:
            if track.album_id is None:
                track.album_id = album_id
        return tracks

    async def list_tracks_by_playlist(
        self, playlist_id: str, window: PageWindow
    ) -> list[TrackDTO]:
        items = await self._list_items(
            f"/Playlists/{playlist_id}/Items",
            {"UserId": self.settings.user_id, **self._page_params(window)},
            "list_tracks_by_playlist",
            not_found=("playlist", playlist_id),
        )
        return [track_from_item(item) for item in items]

    async def list_similar_albums(self, album_id: str, limit: int) -> list[AlbumDTO]:
        items = await self._list_items(
            f"/Items/{album_id}/Similar",
            {"UserId": self.settings.user_id, "Limit": limit},
            "list_similar_albums",
            not_found=("album", album_id),
        )
        return [album_from_item(item) for item in items]

    async def get_lyrics(self, track_id: str) -> LyricsDTO | None:
        # 404 = the track simply has no lyrics, not an error
        payload = await self._get_json(
            f"/Audio/{track_id}/Lyrics", {}, "get_lyrics"
        )
        if payload is None:
            return None
        return lyrics_from_payload(track_id, payload)
