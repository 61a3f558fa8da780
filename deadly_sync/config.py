"""
Application configuration using pydantic-settings.

============================================================================
DATA SOURCE ARCHITECTURE
============================================================================
The app browses a LOCAL database populated from the published metadata
archive (a ZIP attached to the latest GitHub release of the metadata repo).
The archive contains:
- One JSON document per show (shows/<show_id>.json)
- One JSON document per recording (recordings/<identifier>.json)
- Curated collections (collections.json)
- Build metadata (manifest.json)

The importer (deadly_sync/ingestion/importer.py) downloads the archive once,
rebuilds the show/recording/search/collection tables from it, and keeps the
user's library across re-imports. Everything the app reads comes from the
local database afterwards.
============================================================================
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    debug: bool = False  # DEBUG-level logging in the import script

    # Database - SQLite locally; any SQLAlchemy async URL works (e.g. postgresql+asyncpg://...)
    database_url: str = "sqlite+aiosqlite:///./deadly.sqlite"
    database_echo: bool = False  # SQL echo is extremely noisy during imports

    # Release source
    releases_api_url: str = "https://api.github.com/repos/ds17f/dead-metadata/releases/latest"
    github_token: str | None = None  # Optional, raises the API rate limit
    data_asset_prefix: str = "data"
    data_asset_suffix: str = ".zip"
    package_name: str = "dead-metadata"

    # Scratch space for the downloaded archive and extraction (system temp dir when unset)
    work_dir: str | None = None

    # Import tuning
    import_batch_size: int = 500  # Rows per insert transaction
    show_progress_interval: int = 100  # Emit a reading_shows event every N files
    recording_progress_interval: int = 500  # Emit an importing_recordings event every N files

    # Timeouts (in seconds)
    http_request_timeout: int = 30
    download_timeout: int = 600  # The archive is tens of MB
    download_chunk_size: int = 64 * 1024

    # Retry settings
    max_retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
