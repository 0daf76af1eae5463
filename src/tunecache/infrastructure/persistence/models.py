"""SQLAlchemy ORM models for the local catalog."""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tunecache.domain.entities import utc_now


# Hey future me - SQLite doesn't preserve timezone info! UTC datetimes come back "naive".
# Use this before comparing a DB timestamp with datetime.now(UTC) or you get
# "can't compare offset-naive and offset-aware datetimes".
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models (shared metadata registry)."""

    pass


# Listen up, every catalog table is keyed by (source_id, id) where id is the id the REMOTE
# server assigned. Two Jellyfin servers may well reuse ids, source_id keeps them apart.
# metadata_json holds the raw remote payload so views can read fields we don't model.
# created_at is written once on insert, updated_at on every upsert that touches the row.
class _CatalogMixin:
    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class ArtistModel(_CatalogMixin, Base):
    __tablename__ = "artists"

    is_folder: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default="0"
    )

    __table_args__ = (Index("ix_artists_name", "source_id", "name"),)


class AlbumModel(_CatalogMixin, Base):
    __tablename__ = "albums"

    production_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_folder: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=True, server_default="1"
    )
    album_artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # Kept as the server sent it (ISO 8601 string), it's only used for "recently added" sorting
    date_created: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (Index("ix_albums_date_created", "source_id", "date_created"),)


class TrackModel(_CatalogMixin, Base):
    """Tracks are reached through album AND playlist chains, both upsert into this table."""

    __tablename__ = "tracks"

    album_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    album: Mapped[str | None] = mapped_column(String(512), nullable=True)
    album_artist: Mapped[str | None] = mapped_column(String(512), nullable=True)
    production_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    index_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parent_index_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    run_time_ticks: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    has_lyrics: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default="0"
    )
    lyrics: Mapped[str | None] = mapped_column(Text, nullable=True)
    lyrics_synced: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default="0"
    )

    __table_args__ = (
        Index("ix_tracks_album", "source_id", "album_id"),
        Index("ix_tracks_has_lyrics", "source_id", "has_lyrics"),
    )


class PlaylistModel(_CatalogMixin, Base):
    __tablename__ = "playlists"

    can_delete: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default="0"
    )
    child_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


# Hey future me - relation tables are ORDERED lists keyed by (source_id, parent, position),
# not sets keyed by (parent, child). That way a playlist can contain the same track twice
# and a page of playlist tracks at offset k maps 1:1 onto positions k.. of the relation.
# No foreign keys on the child side: similar albums and album artists may point
# at ids that are not (yet) synced.
class AlbumArtistModel(Base):
    __tablename__ = "album_artists"

    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    album_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    artist_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (Index("ix_album_artists_artist", "source_id", "artist_id"),)


class TrackArtistModel(Base):
    __tablename__ = "track_artists"

    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    track_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    artist_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (Index("ix_track_artists_artist", "source_id", "artist_id"),)


class PlaylistTrackModel(Base):
    __tablename__ = "playlist_tracks"

    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    playlist_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    track_id: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (Index("ix_playlist_tracks_track", "source_id", "track_id"),)


class AlbumSimilarModel(Base):
    __tablename__ = "album_similar"

    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    album_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    similar_album_id: Mapped[str] = mapped_column(String(64), nullable=False)


# Yo, one row per fetch chain. parent_id is "" (not NULL!) for basic kinds because NULL
# never equals NULL in a primary key / unique comparison on most backends.
class SyncCursorModel(Base):
    __tablename__ = "sync_cursors"

    source_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    entity_kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    parent_id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default="", server_default=""
    )
    start_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default="0"
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )
