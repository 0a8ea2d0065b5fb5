"""
Pilbum Backend — Admin & Setup Routes
=======================================

Route Inventory:
    GET  /api/admin/db               schema status            (no auth: first-run setup)
    POST /api/admin/db               create tables + admin    (no auth, idempotent)
    POST /api/admin/recover-photos   rebuild rows from disk   (login)
    GET  /api/admin/system           system status report     (login)
    GET  /api/admin/settings         stored settings          (admin)
    PUT  /api/admin/settings         upsert one setting       (admin)

The /db routes stay open because they run before any account exists; once
the schema is ready POST is a no-op.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.database import check_schema, get_db_session
from pilbum.dependencies import require_admin, require_login
from pilbum.schemas.common import ErrorResponse, SuccessResponse
from pilbum.schemas.photo import RecoveryResponse
from pilbum.schemas.setting import SettingsResponse, SettingUpdate
from pilbum.schemas.system import DatabaseStatus, SystemInfo
from pilbum.services.auth_service import SessionData
from pilbum.services.photo_service import photo_service
from pilbum.services.settings_service import settings_service
from pilbum.services.system_service import system_service

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/db", response_model=DatabaseStatus, summary="Database schema status")
async def database_status() -> DatabaseStatus:
    ready, message = await check_schema()
    return DatabaseStatus(ready=ready, message=message)


@router.post(
    "/db",
    response_model=SuccessResponse,
    responses={500: {"description": "Initialization failed", "model": ErrorResponse}},
    summary="Initialize the database",
)
async def initialize_database() -> SuccessResponse:
    message = await system_service.initialize_database()
    return SuccessResponse(message=message)


@router.post(
    "/recover-photos",
    response_model=RecoveryResponse,
    responses={
        400: {"description": "Storage is not local", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        404: {"description": "No uploads directory", "model": ErrorResponse},
    },
    summary="Recover photo rows from local storage",
)
async def recover_photos(
    _session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> RecoveryResponse:
    return await photo_service.recover_photos(db)


@router.get(
    "/system",
    response_model=SystemInfo,
    responses={401: {"description": "Not logged in", "model": ErrorResponse}},
    summary="System status",
)
async def system_info(
    _session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> SystemInfo:
    return await system_service.system_info(db)


@router.get(
    "/settings",
    response_model=SettingsResponse,
    responses={
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Not an admin", "model": ErrorResponse},
    },
    summary="Stored site settings",
)
async def get_settings(
    _admin: SessionData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> SettingsResponse:
    return SettingsResponse(settings=await settings_service.stored_settings(db))


@router.put(
    "/settings",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Missing key or value", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Not an admin", "model": ErrorResponse},
    },
    summary="Update a site setting",
)
async def update_setting(
    body: SettingUpdate,
    _admin: SessionData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await settings_service.set_setting(db, body.key, body.stored_value())
    return SuccessResponse()
