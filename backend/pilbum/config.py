"""
Pilbum Backend — Application Configuration
============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Reads environment variables (or a .env file), validates types and
       ranges, and exposes a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before the app starts.

Groups:
    Database      DATABASE_URL and pool sizing (pool options skipped for SQLite)
    Storage       STORAGE_PROVIDER = local | s3 | azure, plus per-provider credentials
    Uploads       size limits and image pipeline dimensions/qualities
    Auth          session cookie signing and the seeded admin password
    Site          site name, description, copyright, GitHub repo for update checks
    Server        host/port, CORS, log level
    Rate limits   per-IP sliding windows for login, upload and the rest of /api
    Retry         tenacity settings for remote storage and GitHub calls
"""

import secrets
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

STORAGE_PROVIDERS = {"local", "s3", "azure"}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for a single-machine install
    (SQLite database and uploads under ./data). Production deployments
    should set SESSION_SECRET so sessions survive restarts.
    """

    # ── Database ──────────────────────────────────────────────────────────
    # Format: sqlite+aiosqlite:///path/to.db or postgresql+asyncpg://user:pw@host/db
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/pilbum.db",
        description="Async SQLAlchemy connection URL",
    )
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=10, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # ── Storage ───────────────────────────────────────────────────────────
    storage_provider: str = Field(default="local")
    local_storage_path: str = Field(default="./data/uploads")

    # Overrides the public URL prefix of every adapter (CDN in front of a bucket)
    storage_public_base_url: str = Field(default="")

    s3_endpoint: str = Field(default="")
    s3_bucket: str = Field(default="")
    s3_access_key_id: str = Field(default="")
    s3_secret_access_key: str = Field(default="")
    s3_region: str = Field(default="auto")

    azure_storage_connection_string: str = Field(default="")
    azure_storage_container_name: str = Field(default="photos")

    @field_validator("storage_provider")
    @classmethod
    def validate_storage_provider(cls, v: str) -> str:
        """Accepts local, s3 or azure (case-insensitive)."""
        lower = v.strip().lower()
        if lower not in STORAGE_PROVIDERS:
            raise ValueError(
                f"Invalid storage_provider '{v}'. Must be one of: {sorted(STORAGE_PROVIDERS)}"
            )
        return lower

    # ── Uploads & Image Pipeline ──────────────────────────────────────────
    max_image_size: int = Field(default=10_485_760, ge=1_048_576, le=104_857_600)
    max_video_size: int = Field(default=52_428_800, ge=1_048_576, le=524_288_000)

    full_max_width: int = Field(default=2400, ge=320, le=10000)
    thumbnail_max_width: int = Field(default=800, ge=100, le=4000)
    blur_width: int = Field(default=32, ge=4, le=128)

    full_quality: int = Field(default=85, ge=1, le=100)
    thumbnail_quality: int = Field(default=75, ge=1, le=100)
    blur_quality: int = Field(default=50, ge=1, le=100)

    # ── Auth ──────────────────────────────────────────────────────────────
    # Empty means a random secret per process: every restart logs everyone out
    session_secret: str = Field(default="")
    session_cookie_name: str = Field(default="pilbum_session")
    session_max_age: int = Field(default=60 * 60 * 24 * 7, ge=60)
    session_cookie_secure: bool = Field(default=False)

    admin_default_password: str = Field(default="admin")

    @field_validator("session_secret")
    @classmethod
    def ensure_session_secret(cls, v: str) -> str:
        return v or secrets.token_hex(32)

    # ── Site ──────────────────────────────────────────────────────────────
    site_name: str = Field(default="Pilbum")
    site_description: str = Field(default="A minimal photo album")
    site_copyright: str = Field(default="")
    github_repo: str = Field(default="pilbum/pilbum")

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

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

    # ── Retry Configuration ───────────────────────────────────────────────
    # Tenacity settings for S3/Azure uploads and the GitHub release check
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=0.5, ge=0, le=30)
    retry_max_wait: float = Field(default=5, ge=0, le=120)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Per-IP sliding windows, matched by path prefix (first match wins)
    rate_limit_enabled: bool = Field(default=True)
    # Honour X-Forwarded-For only when a trusted reverse proxy sets it
    trust_proxy_headers: bool = Field(default=False)
    rate_limit_auth_requests: int = Field(default=10, ge=1)
    rate_limit_auth_window: int = Field(default=60, ge=1)
    rate_limit_upload_requests: int = Field(default=20, ge=1)
    rate_limit_upload_window: int = Field(default=60, ge=1)
    rate_limit_general_requests: int = Field(default=60, ge=1)
    rate_limit_general_window: int = Field(default=60, ge=1)

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def sqlite_path(self) -> str | None:
        """Filesystem path of the SQLite database, or None for other backends."""
        if not self.is_sqlite:
            return None
        _, _, path = self.database_url.partition(":///")
        return path or None

    def is_storage_configured(self) -> bool:
        """
        Whether the selected storage provider has everything it needs.

        Local storage is always usable, except when DATABASE_URL was set
        explicitly (a hosted deployment) while STORAGE_PROVIDER was left unset:
        files written to a serverless instance's disk would be lost.
        """
        provider = self.storage_provider
        if provider == "local":
            explicit = self.model_fields_set
            if "database_url" in explicit and "storage_provider" not in explicit:
                return False
            return True
        if provider == "s3":
            return bool(
                self.s3_endpoint
                and self.s3_bucket
                and self.s3_access_key_id
                and self.s3_secret_access_key
            )
        if provider == "azure":
            return bool(
                self.azure_storage_connection_string
                and self.azure_storage_container_name
            )
        return False


# Imported everywhere as `from pilbum.config import settings`
settings = Settings()
