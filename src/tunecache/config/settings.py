"""Application settings using pydantic-settings."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Annotated[
    Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    BeforeValidator(lambda v: v.upper() if isinstance(v, str) else v),
]


class DatabaseSettings(BaseModel):
    """Local catalog database connection."""

    url: str = Field(
        default="sqlite+aiosqlite:///./tunecache.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(default=True)
    # Pool options only apply to PostgreSQL, SQLite has no pool
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


class SyncSettings(BaseModel):
    """Defaults for the catalog sync engine."""

    concurrency: int = Field(
        default=5, ge=1, le=50, description="Max concurrent fetch tasks"
    )
    page_size: int = Field(
        default=500, ge=1, le=5000, description="Records requested per page"
    )
    include_dependents: bool = Field(
        default=True, description="Fetch album/playlist tracks after basic entities"
    )
    include_enrichment: bool = Field(
        default=True, description="Fetch similar albums and lyrics (best effort)"
    )
    enrichment_limit: int = Field(
        default=100, ge=0, description="Parents considered per enrichment kind"
    )
    similar_albums_limit: int = Field(
        default=20, ge=1, description="Similar albums requested per album"
    )


class JellyfinSettings(BaseModel):
    """Connection to a Jellyfin (or Emby) server."""

    base_url: str = Field(default="http://localhost:8096")
    user_id: str = Field(default="")
    access_token: str = Field(default="")
    device_id: str = Field(default="tunecache")
    client_name: str = Field(default="tunecache")
    client_version: str = Field(default="0.1.0")
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=5, ge=1)
    retry_initial_delay: float = Field(default=0.1, ge=0)


class ObservabilitySettings(BaseModel):
    log_level: LogLevel = Field(default="INFO", description="Log level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")


class Settings(BaseSettings):
    """Root settings object.

    Values come from the environment (``TUNECACHE_`` prefix, ``__`` between
    nested sections) or a ``.env`` file, e.g.
    ``TUNECACHE_SYNC__CONCURRENCY=8`` or ``TUNECACHE_DATABASE__URL=...``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUNECACHE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="tunecache")
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    jellyfin: JellyfinSettings = Field(default_factory=JellyfinSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
