"""Configuration module for tunecache."""

from .settings import (
    DatabaseSettings,
    JellyfinSettings,
    ObservabilitySettings,
    Settings,
    SyncSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "JellyfinSettings",
    "ObservabilitySettings",
    "Settings",
    "SyncSettings",
    "get_settings",
]
