"""Shared fixtures.

Hey future me - every test gets its OWN SQLite file under tmp_path. Don't switch this to
":memory:" for the engine tests: an in-memory database lives on a single shared connection
and the engine runs several sessions concurrently.
"""

from collections.abc import AsyncIterator

import pytest

from tunecache.config.settings import DatabaseSettings, Settings
from tunecache.infrastructure.persistence.database import Database
from tunecache.infrastructure.persistence.invalidation import InvalidationNotifier
from tunecache.infrastructure.persistence.repositories import (
    SqlEntityStore,
    SyncCursorRepository,
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path}/catalog.db")
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def notifier() -> InvalidationNotifier:
    return InvalidationNotifier()


@pytest.fixture
def entity_store(database: Database, notifier: InvalidationNotifier) -> SqlEntityStore:
    return SqlEntityStore(database.get_session_factory(), notifier)


@pytest.fixture
def cursor_store(
    database: Database, notifier: InvalidationNotifier
) -> SyncCursorRepository:
    return SyncCursorRepository(database.get_session_factory(), notifier)
