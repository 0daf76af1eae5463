"""Catalog synchronization - engine, fetch plans and progress."""

from tunecache.application.sync.engine import SyncConfig, SyncEngine, run_sync
from tunecache.application.sync.fetchers import FETCHERS, PageFetcher, PageRequest
from tunecache.application.sync.progress import ProgressCallback, ProgressTracker

__all__ = [
    "FETCHERS",
    "PageFetcher",
    "PageRequest",
    "ProgressCallback",
    "ProgressTracker",
    "SyncConfig",
    "SyncEngine",
    "run_sync",
]
