"""
Pilbum Backend — Public Site Routes
=====================================

Unauthenticated endpoints the gallery and setup pages read on load.

Route Inventory:
    GET /api/settings          public settings (defaults + stored values)
    GET /api/config/storage    whether storage is configured
    GET /api/version           update check against GitHub releases
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.config import settings
from pilbum.database import get_db_session
from pilbum.schemas.setting import SettingsResponse
from pilbum.schemas.system import StorageConfigStatus, VersionInfo
from pilbum.services.settings_service import settings_service
from pilbum.services.version_service import check_for_updates

router = APIRouter(prefix="/api", tags=["Site"])


@router.get("/settings", response_model=SettingsResponse, summary="Public site settings")
async def public_settings(db: AsyncSession = Depends(get_db_session)) -> SettingsResponse:
    return SettingsResponse(settings=await settings_service.public_settings(db))


@router.get("/config/storage", response_model=StorageConfigStatus, summary="Storage configuration status")
async def storage_config() -> StorageConfigStatus:
    return StorageConfigStatus(configured=settings.is_storage_configured())


@router.get(
    "/version",
    response_model=VersionInfo,
    responses={500: {"description": "GitHub unreachable", "model": VersionInfo}},
    summary="Check for a newer release",
)
async def version(
    force: bool = Query(default=False, description="Bypass the one-hour cache"),
):
    info = await check_for_updates(force=force)
    if info.error:
        return JSONResponse(
            status_code=500,
            content=info.model_dump(by_alias=True, mode="json"),
        )
    return info
