"""Async engine and session factory of the local catalog database."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tunecache.config import DatabaseSettings, Settings

logger = logging.getLogger(__name__)

# Seconds a connection waits for the SQLite write lock before raising "database is locked"
SQLITE_LOCK_TIMEOUT = 30


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")


def _engine_options(db: DatabaseSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": db.echo, "pool_pre_ping": db.pool_pre_ping}

    if _is_sqlite(db.url):
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_LOCK_TIMEOUT,
        }
        # Hey future me - every new connection to ":memory:" is a NEW empty database!
        # StaticPool hands out one shared connection so tables created in create_tables()
        # are visible to all sessions. Only for tests and throwaway runs, concurrent
        # sessions would share that one connection.
        if _is_memory_sqlite(db.url):
            options["poolclass"] = StaticPool
    elif db.url.startswith("postgresql"):
        options.update(
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
        )
    return options


def _on_sqlite_connect(dbapi_conn: Any, _connection_record: Any) -> None:
    # WAL lets views keep reading while a sync writes
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_LOCK_TIMEOUT * 1000}")
    finally:
        cursor.close()


class Database:
    """Owns the engine. Stores get sessions through get_session_factory()."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        url = settings.database.url
        self._engine = create_async_engine(url, **_engine_options(settings.database))
        if _is_sqlite(url):
            event.listen(self._engine.sync_engine, "connect", _on_sqlite_connect)

        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on normal exit, rolled back on any exception."""
        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            await session.commit()

    async def create_tables(self) -> None:
        """Create the schema directly (tests, throwaway databases). Use Alembic otherwise."""
        from tunecache.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug(f"Created catalog tables on {self._engine.url.render_as_string()}")

    async def drop_tables(self) -> None:
        from tunecache.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        await self._engine.dispose()
