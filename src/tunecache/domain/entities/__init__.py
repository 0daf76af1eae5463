"""Domain entities."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class SyncTier(str, Enum):
    """Scheduling and failure-policy group of an entity kind."""

    BASIC = "basic"
    DEPENDENT = "dependent"
    ENRICHMENT = "enrichment"


# Hey future me, EntityKind is CLOSED - the engine, the fetcher registry and the
# progress snapshot all iterate over it and expect every member to be handled. Adding a kind
# means adding a PageFetcher for it too. The tier decides WHEN it runs and whether its
# errors are fatal, it never changes what the kind is. Values are stored as strings in
# sync_cursors.entity_kind, so don't rename them without a migration!
class EntityKind(str, Enum):
    """Category of synchronized data."""

    ARTIST = "artist"
    ALBUM = "album"
    PLAYLIST = "playlist"
    ALBUM_TRACK = "album_track"
    PLAYLIST_TRACK = "playlist_track"
    SIMILAR_ALBUM = "similar_album"
    LYRICS = "lyrics"

    @property
    def tier(self) -> SyncTier:
        return _TIERS[self]

    @property
    def is_nested(self) -> bool:
        """Whether cursors for this kind are kept per parent entity."""
        return self.tier is not SyncTier.BASIC

    @property
    def is_fatal_on_error(self) -> bool:
        """Errors on basic and dependent kinds fail the sync, enrichment never does."""
        return self.tier is not SyncTier.ENRICHMENT

    @classmethod
    def for_tier(cls, tier: SyncTier) -> list["EntityKind"]:
        return [kind for kind in cls if kind.tier is tier]


_TIERS: dict[EntityKind, SyncTier] = {
    EntityKind.ARTIST: SyncTier.BASIC,
    EntityKind.ALBUM: SyncTier.BASIC,
    EntityKind.PLAYLIST: SyncTier.BASIC,
    EntityKind.ALBUM_TRACK: SyncTier.DEPENDENT,
    EntityKind.PLAYLIST_TRACK: SyncTier.DEPENDENT,
    EntityKind.SIMILAR_ALBUM: SyncTier.ENRICHMENT,
    EntityKind.LYRICS: SyncTier.ENRICHMENT,
}


class Relation(str, Enum):
    """Relationship tables maintained with replace-all-for-parent semantics."""

    ALBUM_ARTIST = "album_artist"
    TRACK_ARTIST = "track_artist"
    PLAYLIST_TRACK = "playlist_track"
    ALBUM_SIMILAR = "album_similar"


class SyncState(str, Enum):
    """Sync engine lifecycle states."""

    IDLE = "idle"
    FETCHING_BASIC = "fetching_basic"
    FETCHING_DEPENDENT = "fetching_dependent"
    FETCHING_ENRICHMENT = "fetching_enrichment"
    DONE = "done"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncState.DONE, SyncState.FAILED, SyncState.STOPPED)


# Listen up, a SyncCursor is the RESUME POINT for one chain. Basic kinds have one chain per
# (source, kind) so parent_id is "". Nested kinds (album tracks, playlist tracks, enrichment)
# have one chain PER PARENT, keyed by the parent's remote id. start_index is a record offset,
# not a page number, so changing page_size between runs is safe. The dataclass is frozen -
# advancing returns a new cursor, the engine writes it after the page is persisted.
@dataclass(frozen=True)
class SyncCursor:
    """Durable resume point for one (source, kind, parent) fetch chain."""

    source_id: str
    kind: EntityKind
    parent_id: str = ""
    start_index: int = 0
    page_size: int = 0
    completed: bool = False
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def initial(
        cls,
        source_id: str,
        kind: EntityKind,
        page_size: int,
        parent_id: str = "",
    ) -> "SyncCursor":
        """Cursor used when none has been stored yet."""
        return cls(
            source_id=source_id,
            kind=kind,
            parent_id=parent_id,
            start_index=0,
            page_size=page_size,
            completed=False,
        )

    def advanced(self, fetched: int, page_size: int) -> "SyncCursor":
        """Cursor after a non-empty page of ``fetched`` records was persisted."""
        return replace(
            self,
            start_index=self.start_index + fetched,
            page_size=page_size,
            completed=fetched < page_size,
            updated_at=utc_now(),
        )

    def mark_completed(self) -> "SyncCursor":
        return replace(self, completed=True, updated_at=utc_now())


@dataclass
class EntityProgress:
    """Per-kind counters of a single sync run."""

    kind: EntityKind
    total_fetched: int = 0
    total_inserted: int = 0
    current_page: int = 0
    is_complete: bool = False
    error: str | None = None
    # Parents whose chain was abandoned (enrichment errors, vanished parents)
    failed_parents: int = 0


@dataclass
class ProgressSnapshot:
    """Point-in-time view of a sync run, handed to progress callbacks."""

    source_id: str
    state: SyncState
    entities: dict[EntityKind, EntityProgress]
    queue_size: int = 0
    pending_tasks: int = 0

    def __getitem__(self, kind: EntityKind) -> EntityProgress:
        return self.entities[kind]

    @property
    def errored_kinds(self) -> list[EntityKind]:
        return [kind for kind, p in self.entities.items() if p.error is not None]


__all__ = [
    "EntityKind",
    "EntityProgress",
    "ProgressSnapshot",
    "Relation",
    "SyncCursor",
    "SyncState",
    "SyncTier",
    "utc_now",
]
