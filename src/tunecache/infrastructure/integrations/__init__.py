"""Source driver integrations."""

from tunecache.infrastructure.integrations.jellyfin_client import JellyfinClient

__all__ = ["JellyfinClient"]
