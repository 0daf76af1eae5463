"""Application layer - use cases and background work."""
