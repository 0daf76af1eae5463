"""
Data Transfer Objects returned by source drivers.

Hey future me - these DTOs are the LINGUA FRANCA between source drivers and the sync engine!
Every driver (Jellyfin, Emby, a test fake) converts its API payloads into these shapes, so the
engine and the store never see server-specific JSON. ``extra`` keeps the raw payload, it is
persisted as metadata_json so views can read fields we don't model explicitly.

Flow: Driver API response → DTO → PageFetcher → Entity Store
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PageWindow:
    """Offset/limit window of a paginated read."""

    offset: int
    limit: int

    @property
    def end(self) -> int:
        return self.offset + self.limit


@dataclass
class ArtistDTO:
    id: str
    name: str
    is_folder: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class AlbumDTO:
    """Album as reported by the source.

    ``artist_ids`` is ordered (first = primary artist) and becomes the
    album's album_artists relation set.
    """

    id: str
    name: str
    production_year: int | None = None
    is_folder: bool = True
    album_artist: str | None = None
    date_created: str | None = None
    artist_ids: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class TrackDTO:
    id: str
    name: str
    album_id: str | None = None
    album: str | None = None
    album_artist: str | None = None
    production_year: int | None = None
    index_number: int | None = None
    parent_index_number: int | None = None
    # Jellyfin ticks: 10_000_000 per second
    run_time_ticks: int | None = None
    artist_ids: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class PlaylistDTO:
    id: str
    name: str
    can_delete: bool = False
    child_count: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class LyricsDTO:
    track_id: str
    lyrics: str
    # True when the source provided timestamps per line (LRC style)
    is_synced: bool = False


__all__ = [
    "AlbumDTO",
    "ArtistDTO",
    "LyricsDTO",
    "PageWindow",
    "PlaylistDTO",
    "TrackDTO",
]
