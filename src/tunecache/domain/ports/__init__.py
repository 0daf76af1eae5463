"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from tunecache.domain.dtos import (
    AlbumDTO,
    ArtistDTO,
    LyricsDTO,
    PageWindow,
    PlaylistDTO,
    TrackDTO,
)
from tunecache.domain.entities import EntityKind, Relation, SyncCursor

Record = ArtistDTO | AlbumDTO | TrackDTO | PlaylistDTO


# Hey future me, ISourceDriver is a PORT (Hexagonal Architecture)! The sync engine only talks to
# this interface, the Jellyfin client in infrastructure is one implementation and test fakes are
# others. Contract for every list_* call: fewer records than window.limit means "last page", an
# empty list means the same. Retry/backoff/auth belong to the driver - whatever it raises is
# FINAL for that call, the engine won't retry.
class ISourceDriver(ABC):
    """Read access to a remote media library."""

    @abstractmethod
    async def list_artists(self, window: PageWindow) -> list[ArtistDTO]:
        """List one page of artists."""
        pass

    @abstractmethod
    async def list_albums(self, window: PageWindow) -> list[AlbumDTO]:
        """List one page of albums."""
        pass

    @abstractmethod
    async def list_playlists(self, window: PageWindow) -> list[PlaylistDTO]:
        """List one page of playlists."""
        pass

    @abstractmethod
    async def list_tracks_by_album(
        self, album_id: str, window: PageWindow
    ) -> list[TrackDTO]:
        """List one page of an album's tracks."""
        pass

    @abstractmethod
    async def list_tracks_by_playlist(
        self, playlist_id: str, window: PageWindow
    ) -> list[TrackDTO]:
        """List one page of a playlist's tracks, in playlist order."""
        pass

    @abstractmethod
    async def list_similar_albums(self, album_id: str, limit: int) -> list[AlbumDTO]:
        """List albums the source considers similar (single, unpaginated call)."""
        pass

    @abstractmethod
    async def get_lyrics(self, track_id: str) -> LyricsDTO | None:
        """Get lyrics for a track, None when the track has none."""
        pass

    async def close(self) -> None:
        """Release network resources (no-op by default)."""
        return None


class IEntityStore(ABC):
    """Idempotent persistence of synchronized records, scoped by source."""

    @abstractmethod
    async def upsert_batch(
        self, source_id: str, kind: EntityKind, records: Sequence[Record]
    ) -> int:
        """Insert-or-update records as one batch.

        ``kind`` selects the table: artists, albums, playlists, and tracks for
        both ALBUM_TRACK and PLAYLIST_TRACK. Returns the number of rows written.
        """
        pass

    @abstractmethod
    async def replace_relations(
        self,
        source_id: str,
        relation: Relation,
        parents: Mapping[str, Sequence[str]],
        start_position: int = 0,
    ) -> int:
        """Replace relation rows of each parent with the given ordered children.

        Rows of a parent at positions >= ``start_position`` are deleted and the
        children inserted at ``start_position``, ``start_position + 1``, ...
        With the default of 0 the whole relation set is replaced.
        """
        pass

    @abstractmethod
    async def query_parents(
        self, source_id: str, kind: EntityKind, limit: int | None = None
    ) -> list[str]:
        """Ids of the stored parents a nested kind is fetched for.

        ALBUM_TRACK and SIMILAR_ALBUM → albums, PLAYLIST_TRACK → playlists,
        LYRICS → tracks that have no lyrics yet. Ordered by id.
        """
        pass

    @abstractmethod
    async def store_lyrics(self, source_id: str, lyrics: LyricsDTO) -> bool:
        """Attach lyrics to a stored track. False if the track is unknown."""
        pass

    @abstractmethod
    async def list_relation(
        self, source_id: str, relation: Relation, parent_id: str
    ) -> list[str]:
        """Child ids of a parent in relation order."""
        pass

    @abstractmethod
    async def count(self, source_id: str, kind: EntityKind) -> int:
        """Number of stored rows backing ``kind`` for the source."""
        pass

    @property
    @abstractmethod
    def write_count(self) -> int:
        """Committed write operations since the store was created."""
        pass


class ISyncCursorStore(ABC):
    """Durable per-chain resume points."""

    @abstractmethod
    async def read_cursor(
        self, source_id: str, kind: EntityKind, parent_id: str = ""
    ) -> SyncCursor | None:
        pass

    @abstractmethod
    async def read_cursors(
        self, source_id: str, kind: EntityKind
    ) -> dict[str, SyncCursor]:
        """All cursors of a kind, keyed by parent id ("" for basic kinds)."""
        pass

    @abstractmethod
    async def write_cursor(self, cursor: SyncCursor) -> None:
        pass

    @abstractmethod
    async def reset_cursors(
        self, source_id: str, kinds: Sequence[EntityKind] | None = None
    ) -> int:
        """Rewind cursors to start_index=0, completed=False (external resync).

        Returns the number of cursors reset.
        """
        pass


__all__ = [
    "IEntityStore",
    "ISourceDriver",
    "ISyncCursorStore",
    "Record",
]
