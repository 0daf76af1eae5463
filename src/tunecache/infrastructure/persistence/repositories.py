"""Repository implementations of the entity and cursor store ports."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tunecache.domain.dtos import AlbumDTO, ArtistDTO, LyricsDTO, PlaylistDTO, TrackDTO
from tunecache.domain.entities import EntityKind, Relation, SyncCursor, utc_now
from tunecache.domain.exceptions import PersistenceError
from tunecache.domain.ports import IEntityStore, ISyncCursorStore, Record

from .invalidation import InvalidationNotifier
from .models import (
    AlbumArtistModel,
    AlbumModel,
    AlbumSimilarModel,
    ArtistModel,
    PlaylistModel,
    PlaylistTrackModel,
    SyncCursorModel,
    TrackArtistModel,
    TrackModel,
    ensure_utc_aware,
)
from .retry import with_db_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

CatalogModel = type[ArtistModel] | type[AlbumModel] | type[TrackModel] | type[PlaylistModel]

_CATALOG_MODELS: dict[EntityKind, CatalogModel] = {
    EntityKind.ARTIST: ArtistModel,
    EntityKind.ALBUM: AlbumModel,
    EntityKind.PLAYLIST: PlaylistModel,
    EntityKind.ALBUM_TRACK: TrackModel,
    EntityKind.PLAYLIST_TRACK: TrackModel,
}

# relation → (model, parent column, child column)
_RELATION_MODELS: dict[Relation, tuple[Any, str, str]] = {
    Relation.ALBUM_ARTIST: (AlbumArtistModel, "album_id", "artist_id"),
    Relation.TRACK_ARTIST: (TrackArtistModel, "track_id", "artist_id"),
    Relation.PLAYLIST_TRACK: (PlaylistTrackModel, "playlist_id", "track_id"),
    Relation.ALBUM_SIMILAR: (AlbumSimilarModel, "album_id", "similar_album_id"),
}

# Attempts for a batch that lost an insert race against another writer
_UPSERT_ATTEMPTS = 3


def _record_values(record: Record) -> dict[str, Any]:
    """Mutable column values of a DTO (everything except keys and timestamps)."""
    if isinstance(record, ArtistDTO):
        return {
            "name": record.name,
            "is_folder": record.is_folder,
            "metadata_json": record.extra,
        }
    if isinstance(record, AlbumDTO):
        return {
            "name": record.name,
            "production_year": record.production_year,
            "is_folder": record.is_folder,
            "album_artist": record.album_artist,
            "date_created": record.date_created,
            "metadata_json": record.extra,
        }
    if isinstance(record, TrackDTO):
        return {
            "name": record.name,
            "album_id": record.album_id,
            "album": record.album,
            "album_artist": record.album_artist,
            "production_year": record.production_year,
            "index_number": record.index_number,
            "parent_index_number": record.parent_index_number,
            "run_time_ticks": record.run_time_ticks,
            "metadata_json": record.extra,
        }
    if isinstance(record, PlaylistDTO):
        return {
            "name": record.name,
            "can_delete": record.can_delete,
            "child_count": record.child_count,
            "metadata_json": record.extra,
        }
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


class SqlEntityStore(IEntityStore):
    """SQLAlchemy implementation of the entity store.

    Hey future me, unlike request-scoped repositories this store is shared by many concurrently
    running page tasks, so it takes the session FACTORY and opens one short session per
    operation (same as PersistentJobQueue). Every public write commits on its own, then bumps
    write_count and publishes an invalidation for the touched tables.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: InvalidationNotifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier or InvalidationNotifier()
        self._write_count = 0

    @property
    def notifier(self) -> InvalidationNotifier:
        return self._notifier

    @property
    def write_count(self) -> int:
        return self._write_count

    # ------------------------------------------------------------------ writes

    async def upsert_batch(
        self, source_id: str, kind: EntityKind, records: Sequence[Record]
    ) -> int:
        if not records:
            return 0
        model_cls = self._catalog_model(kind)
        # Last occurrence wins if a page repeats an id
        by_id = {record.id: record for record in records}
        written = await self._guarded(
            model_cls.__tablename__, self._upsert(model_cls, source_id, by_id)
        )
        self._committed(model_cls.__tablename__)
        return written

    @with_db_retry()
    async def _upsert(
        self, model_cls: CatalogModel, source_id: str, by_id: dict[str, Record]
    ) -> int:
        for attempt in range(1, _UPSERT_ATTEMPTS + 1):
            try:
                async with self._session_factory() as session:
                    stmt = select(model_cls).where(
                        model_cls.source_id == source_id,
                        model_cls.id.in_(list(by_id)),
                    )
                    result = await session.execute(stmt)
                    existing = {model.id: model for model in result.scalars().all()}

                    now = utc_now()
                    for record_id, record in by_id.items():
                        values = _record_values(record)
                        model = existing.get(record_id)
                        if model is None:
                            session.add(
                                model_cls(
                                    source_id=source_id,
                                    id=record_id,
                                    created_at=now,
                                    updated_at=now,
                                    **values,
                                )
                            )
                        else:
                            for column, value in values.items():
                                setattr(model, column, value)
                            model.updated_at = now
                    await session.commit()
                return len(by_id)
            except IntegrityError:
                # Another task inserted one of these rows between our SELECT and INSERT
                # (a track reached through its album and a playlist at the same time).
                if attempt == _UPSERT_ATTEMPTS:
                    raise
                logger.debug(
                    f"Concurrent insert into {model_cls.__tablename__}, retrying batch "
                    f"(attempt {attempt}/{_UPSERT_ATTEMPTS})"
                )
        raise RuntimeError("Unexpected state in upsert loop")

    async def replace_relations(
        self,
        source_id: str,
        relation: Relation,
        parents: Mapping[str, Sequence[str]],
        start_position: int = 0,
    ) -> int:
        if not parents:
            return 0
        model_cls = _RELATION_MODELS[relation][0]
        written = await self._guarded(
            model_cls.__tablename__,
            self._replace(source_id, relation, parents, start_position),
        )
        self._committed(model_cls.__tablename__)
        return written

    @with_db_retry()
    async def _replace(
        self,
        source_id: str,
        relation: Relation,
        parents: Mapping[str, Sequence[str]],
        start_position: int,
    ) -> int:
        model_cls, parent_column, child_column = _RELATION_MODELS[relation]
        parent_attr = getattr(model_cls, parent_column)

        rows = [
            model_cls(
                source_id=source_id,
                position=start_position + index,
                **{parent_column: parent_id, child_column: child_id},
            )
            for parent_id, children in parents.items()
            for index, child_id in enumerate(children)
        ]

        async with self._session_factory() as session:
            await session.execute(
                delete(model_cls).where(
                    model_cls.source_id == source_id,
                    parent_attr.in_(list(parents)),
                    model_cls.position >= start_position,
                )
            )
            session.add_all(rows)
            await session.commit()
        return len(rows)

    async def store_lyrics(self, source_id: str, lyrics: LyricsDTO) -> bool:
        stored = await self._guarded(
            TrackModel.__tablename__, self._store_lyrics(source_id, lyrics)
        )
        if stored:
            self._committed(TrackModel.__tablename__)
        else:
            logger.debug(f"Lyrics for unknown track {lyrics.track_id} dropped")
        return stored

    @with_db_retry()
    async def _store_lyrics(self, source_id: str, lyrics: LyricsDTO) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(TrackModel)
                .where(
                    TrackModel.source_id == source_id,
                    TrackModel.id == lyrics.track_id,
                )
                .values(
                    lyrics=lyrics.lyrics,
                    has_lyrics=True,
                    lyrics_synced=lyrics.is_synced,
                    updated_at=utc_now(),
                )
            )
            await session.commit()
        return bool(result.rowcount)

    # ------------------------------------------------------------------ reads

    async def query_parents(
        self, source_id: str, kind: EntityKind, limit: int | None = None
    ) -> list[str]:
        if kind in (EntityKind.ALBUM_TRACK, EntityKind.SIMILAR_ALBUM):
            stmt = select(AlbumModel.id).where(AlbumModel.source_id == source_id)
            stmt = stmt.order_by(AlbumModel.id)
        elif kind is EntityKind.PLAYLIST_TRACK:
            stmt = select(PlaylistModel.id).where(PlaylistModel.source_id == source_id)
            stmt = stmt.order_by(PlaylistModel.id)
        elif kind is EntityKind.LYRICS:
            stmt = select(TrackModel.id).where(
                TrackModel.source_id == source_id,
                TrackModel.has_lyrics.is_(False),
            )
            stmt = stmt.order_by(TrackModel.id)
        else:
            raise ValueError(f"{kind.value} is not fetched per parent")

        if limit is not None:
            stmt = stmt.limit(limit)
        return list(await self._read(stmt, scalars=True))

    async def list_relation(
        self, source_id: str, relation: Relation, parent_id: str
    ) -> list[str]:
        model_cls, parent_column, child_column = _RELATION_MODELS[relation]
        stmt = (
            select(getattr(model_cls, child_column))
            .where(
                model_cls.source_id == source_id,
                getattr(model_cls, parent_column) == parent_id,
            )
            .order_by(model_cls.position)
        )
        return list(await self._read(stmt, scalars=True))

    async def count(self, source_id: str, kind: EntityKind) -> int:
        if kind is EntityKind.SIMILAR_ALBUM:
            stmt = select(func.count()).select_from(AlbumSimilarModel).where(
                AlbumSimilarModel.source_id == source_id
            )
        elif kind is EntityKind.LYRICS:
            stmt = select(func.count()).select_from(TrackModel).where(
                TrackModel.source_id == source_id,
                TrackModel.has_lyrics.is_(True),
            )
        else:
            model_cls = self._catalog_model(kind)
            stmt = select(func.count()).select_from(model_cls).where(
                model_cls.source_id == source_id
            )
        return int(await self._read(stmt))

    async def get(
        self, source_id: str, kind: EntityKind, record_id: str
    ) -> ArtistModel | AlbumModel | TrackModel | PlaylistModel | None:
        """Stored row of a catalog record (detached, read-only use)."""
        model_cls = self._catalog_model(kind)
        async with self._session_factory() as session:
            return await session.get(model_cls, (source_id, record_id))

    # ------------------------------------------------------------------ helpers

    @staticmethod
    def _catalog_model(kind: EntityKind) -> CatalogModel:
        try:
            return _CATALOG_MODELS[kind]
        except KeyError:
            raise ValueError(f"{kind.value} has no catalog table") from None

    async def _read(self, stmt: Any, scalars: bool = False) -> Any:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalars().all() if scalars else result.scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Catalog query failed: {e}") from e

    async def _guarded(self, table: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except SQLAlchemyError as e:
            raise PersistenceError(f"Write to {table} failed: {e}", table=table) from e

    def _committed(self, *tables: str) -> None:
        self._write_count += 1
        self._notifier.notify(tables)


class SyncCursorRepository(ISyncCursorStore):
    """SQLAlchemy implementation of the sync cursor store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: InvalidationNotifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier or InvalidationNotifier()

    async def read_cursor(
        self, source_id: str, kind: EntityKind, parent_id: str = ""
    ) -> SyncCursor | None:
        try:
            async with self._session_factory() as session:
                model = await session.get(
                    SyncCursorModel, (source_id, kind.value, parent_id)
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Reading {kind.value} cursor failed: {e}",
                table=SyncCursorModel.__tablename__,
            ) from e
        return self._to_entity(model) if model else None

    async def read_cursors(
        self, source_id: str, kind: EntityKind
    ) -> dict[str, SyncCursor]:
        stmt = select(SyncCursorModel).where(
            SyncCursorModel.source_id == source_id,
            SyncCursorModel.entity_kind == kind.value,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Reading {kind.value} cursors failed: {e}",
                table=SyncCursorModel.__tablename__,
            ) from e
        return {model.parent_id: self._to_entity(model) for model in models}

    async def write_cursor(self, cursor: SyncCursor) -> None:
        try:
            await self._write(cursor)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Writing {cursor.kind.value} cursor failed: {e}",
                table=SyncCursorModel.__tablename__,
            ) from e
        self._notifier.notify({SyncCursorModel.__tablename__})

    @with_db_retry()
    async def _write(self, cursor: SyncCursor) -> None:
        async with self._session_factory() as session:
            model = await session.get(
                SyncCursorModel, (cursor.source_id, cursor.kind.value, cursor.parent_id)
            )
            if model is None:
                session.add(
                    SyncCursorModel(
                        source_id=cursor.source_id,
                        entity_kind=cursor.kind.value,
                        parent_id=cursor.parent_id,
                        start_index=cursor.start_index,
                        page_size=cursor.page_size,
                        completed=cursor.completed,
                        updated_at=cursor.updated_at,
                    )
                )
            else:
                model.start_index = cursor.start_index
                model.page_size = cursor.page_size
                model.completed = cursor.completed
                model.updated_at = cursor.updated_at
            await session.commit()

    # Hey future me - this is the "resync" button! The engine NEVER calls it, it only
    # resumes. Rewinding a kind makes the next run fetch it from offset 0 again, upserts
    # make that safe.
    async def reset_cursors(
        self, source_id: str, kinds: Sequence[EntityKind] | None = None
    ) -> int:
        stmt = update(SyncCursorModel).where(SyncCursorModel.source_id == source_id)
        if kinds is not None:
            stmt = stmt.where(
                SyncCursorModel.entity_kind.in_([kind.value for kind in kinds])
            )
        stmt = stmt.values(start_index=0, completed=False, updated_at=utc_now())

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Resetting cursors of {source_id} failed: {e}",
                table=SyncCursorModel.__tablename__,
            ) from e

        reset = int(result.rowcount or 0)
        logger.info(f"Reset {reset} sync cursor(s) of source {source_id}")
        if reset:
            self._notifier.notify({SyncCursorModel.__tablename__})
        return reset

    @staticmethod
    def _to_entity(model: SyncCursorModel) -> SyncCursor:
        return SyncCursor(
            source_id=model.source_id,
            kind=EntityKind(model.entity_kind),
            parent_id=model.parent_id,
            start_index=model.start_index,
            page_size=model.page_size,
            completed=model.completed,
            updated_at=ensure_utc_aware(model.updated_at),
        )
