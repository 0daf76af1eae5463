"""Persistence layer - SQLAlchemy models, database session and repositories."""

from tunecache.infrastructure.persistence.database import Database
from tunecache.infrastructure.persistence.invalidation import InvalidationNotifier
from tunecache.infrastructure.persistence.models import Base
from tunecache.infrastructure.persistence.repositories import (
    SqlEntityStore,
    SyncCursorRepository,
)
from tunecache.infrastructure.persistence.retry import is_lock_error, with_db_retry

__all__ = [
    "Base",
    "Database",
    "InvalidationNotifier",
    "SqlEntityStore",
    "SyncCursorRepository",
    "is_lock_error",
    "with_db_retry",
]
