"""
Pilbum Backend — System & Setup Schemas
=========================================

Bodies for database setup, storage configuration, update checks, the admin
system page and the health probe.
"""

from typing import Any, Dict, Optional

from pydantic import Field

from pilbum.schemas.common import CamelModel


class DatabaseStatus(CamelModel):
    ready: bool
    message: str


class StorageConfigStatus(CamelModel):
    configured: bool


class VersionInfo(CamelModel):
    current_version: str
    latest_version: Optional[str] = None
    has_update: bool = False
    release_url: Optional[str] = None
    release_name: Optional[str] = None
    published_at: Optional[str] = None
    release_notes: Optional[str] = None
    error: Optional[str] = None


class RecordCounts(CamelModel):
    photos: int
    users: int
    settings: int


class DatabaseInfo(CamelModel):
    provider: str
    config: Dict[str, Any]
    size: int
    size_formatted: str
    records: RecordCounts


class StorageInfo(CamelModel):
    provider: str
    config: Dict[str, Any]
    size: int
    size_formatted: str
    photo_storage_size: int
    photo_storage_size_formatted: str


class RuntimeInfo(CamelModel):
    python_version: str
    platform: str
    arch: str


class SystemInfo(CamelModel):
    version: str
    site_name: str
    database: DatabaseInfo
    storage: StorageInfo
    environment: RuntimeInfo


class HealthResponse(CamelModel):
    """
    GET /health. A service that cannot reach its database is reported
    unhealthy (503); missing storage configuration only degrades it.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Storage status: configured, not_configured")
    uptime_seconds: float = Field(description="Seconds since service started")
