"""tunecache - offline catalog synchronization for remote media sources."""

__version__ = "0.1.0"
