"""initial catalog schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00.000000

Hey future me - this creates EVERYTHING the sync engine writes to:
- catalog tables: artists, albums, tracks, playlists (PK = source_id + remote id)
- ordered relation tables: album_artists, track_artists, playlist_tracks, album_similar
  (PK = source_id + parent + position)
- sync_cursors: one resume point per (source_id, entity_kind, parent_id)

Keep it in sync with infrastructure/persistence/models.py!
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _catalog_columns() -> list[sa.Column]:
    return [
        sa.Column("source_id", sa.String(64), primary_key=True),
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _relation_table(name: str, parent: str, child: str) -> None:
    op.create_table(
        name,
        sa.Column("source_id", sa.String(64), primary_key=True),
        sa.Column(parent, sa.String(64), primary_key=True),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column(child, sa.String(64), nullable=False),
    )


def upgrade() -> None:
    op.create_table(
        "artists",
        *_catalog_columns(),
        sa.Column("is_folder", sa.Boolean(), nullable=False, server_default="0"),
    )
    op.create_index("ix_artists_name", "artists", ["source_id", "name"])

    op.create_table(
        "albums",
        *_catalog_columns(),
        sa.Column("production_year", sa.Integer(), nullable=True),
        sa.Column("is_folder", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("album_artist", sa.String(512), nullable=True),
        sa.Column("date_created", sa.String(64), nullable=True),
    )
    op.create_index("ix_albums_date_created", "albums", ["source_id", "date_created"])

    op.create_table(
        "tracks",
        *_catalog_columns(),
        sa.Column("album_id", sa.String(64), nullable=True),
        sa.Column("album", sa.String(512), nullable=True),
        sa.Column("album_artist", sa.String(512), nullable=True),
        sa.Column("production_year", sa.Integer(), nullable=True),
        sa.Column("index_number", sa.Integer(), nullable=True),
        sa.Column("parent_index_number", sa.Integer(), nullable=True),
        sa.Column("run_time_ticks", sa.BigInteger(), nullable=True),
        sa.Column("has_lyrics", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("lyrics", sa.Text(), nullable=True),
        sa.Column("lyrics_synced", sa.Boolean(), nullable=False, server_default="0"),
    )
    op.create_index("ix_tracks_album", "tracks", ["source_id", "album_id"])
    op.create_index("ix_tracks_has_lyrics", "tracks", ["source_id", "has_lyrics"])

    op.create_table(
        "playlists",
        *_catalog_columns(),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("child_count", sa.Integer(), nullable=True),
    )

    _relation_table("album_artists", "album_id", "artist_id")
    op.create_index(
        "ix_album_artists_artist", "album_artists", ["source_id", "artist_id"]
    )
    _relation_table("track_artists", "track_id", "artist_id")
    op.create_index(
        "ix_track_artists_artist", "track_artists", ["source_id", "artist_id"]
    )
    _relation_table("playlist_tracks", "playlist_id", "track_id")
    op.create_index(
        "ix_playlist_tracks_track", "playlist_tracks", ["source_id", "track_id"]
    )
    _relation_table("album_similar", "album_id", "similar_album_id")

    op.create_table(
        "sync_cursors",
        sa.Column("source_id", sa.String(64), primary_key=True),
        sa.Column("entity_kind", sa.String(32), primary_key=True),
        sa.Column("parent_id", sa.String(64), primary_key=True, server_default=""),
        sa.Column("start_index", sa.Integer(), nullable=False),
        sa.Column("page_size", sa.Integer(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("sync_cursors")
    op.drop_table("album_similar")
    op.drop_index("ix_playlist_tracks_track", table_name="playlist_tracks")
    op.drop_table("playlist_tracks")
    op.drop_index("ix_track_artists_artist", table_name="track_artists")
    op.drop_table("track_artists")
    op.drop_index("ix_album_artists_artist", table_name="album_artists")
    op.drop_table("album_artists")
    op.drop_table("playlists")
    op.drop_index("ix_tracks_has_lyrics", table_name="tracks")
    op.drop_index("ix_tracks_album", table_name="tracks")
    op.drop_table("tracks")
    op.drop_index("ix_albums_date_created", table_name="albums")
    op.drop_table("albums")
    op.drop_index("ix_artists_name", table_name="artists")
    op.drop_table("artists")
