"""
RefMan Backend — Application Configuration
============================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before app starts.

Storage layout (defaults, relative to the backend working directory):
    storage/
    ├── sqlite/collection.sqlite3   ← relational backend (entries + keywords)
    └── json/
        ├── items/<id>.json         ← flat-file backend, one record per file
        └── trash/<id>-<ms>.json    ← deleted flat-file records
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for local development against SQLite.
    Attributes are grouped by concern for readability.
    """

    # ── Database ──────────────────────────────────────────────────────────
    # Format: sqlite+aiosqlite:///path or postgresql+asyncpg://user:pw@host/db
    database_url: str = Field(
        default="sqlite+aiosqlite:///./storage/sqlite/collection.sqlite3",
        description="Async SQLAlchemy connection URL for the relational backend",
    )

    # Pool sizing is ignored for SQLite URLs (see database.py)
    db_pool_size: int = Field(default=20, ge=5, le=100)
    db_max_overflow: int = Field(default=10, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # ── Storage Backends ──────────────────────────────────────────────────
    # What: Which backend owns the collection ("sqlite" relational, "json" flat files)
    # Both route groups are always mounted; this decides what the archive export covers.
    storage_backend: str = Field(default="sqlite")

    json_storage_root: str = Field(default="./storage/json/items")
    json_trash_root: str = Field(default="./storage/json/trash")

    # What: Upper bound on concurrently running per-entry units of work
    # during a batch POST /api/entries
    batch_max_concurrency: int = Field(default=8, ge=1, le=64)

    # ── Metadata Scraper ──────────────────────────────────────────────────
    metadata_timeout: float = Field(default=10.0, gt=0, le=120)
    metadata_user_agent: str = Field(default="refman-server/1.0 (+metadata scraper)")

    # Tenacity retry settings for outbound page fetches
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: int = Field(default=1, ge=0, le=30)
    retry_max_wait: int = Field(default=8, ge=1, le=120)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        valid_backends = {"sqlite", "json"}
        lower = v.lower()
        if lower not in valid_backends:
            raise ValueError(
                f"Invalid storage_backend '{v}'. Must be one of: {valid_backends}"
            )
        return lower

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton instance: imported throughout the application
settings = Settings()
