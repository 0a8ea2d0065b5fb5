"""
Pilbum Backend — User Administration Routes
=============================================

All routes require an admin session.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.database import get_db_session
from pilbum.dependencies import require_admin
from pilbum.schemas.common import ErrorResponse, SuccessResponse
from pilbum.schemas.user import (
    CreateUserRequest,
    UpdateUserRequest,
    UserEnvelope,
    UserListResponse,
    UserResponse,
)
from pilbum.services.auth_service import SessionData
from pilbum.services.user_service import user_service

router = APIRouter(
    prefix="/api/admin/users",
    tags=["Users"],
    responses={
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Not an admin", "model": ErrorResponse},
    },
)


@router.get("", response_model=UserListResponse, summary="List users, newest first")
async def list_users(
    _admin: SessionData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> UserListResponse:
    users = await user_service.list_users(db)
    return UserListResponse(users=[UserResponse.model_validate(user) for user in users])


@router.post(
    "",
    status_code=201,
    response_model=UserEnvelope,
    responses={409: {"description": "Username taken", "model": ErrorResponse}},
    summary="Create a user",
)
async def create_user(
    body: CreateUserRequest,
    _admin: SessionData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    user = await user_service.create_user(db, body)
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.patch(
    "/{user_id}",
    response_model=UserEnvelope,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Update a user",
)
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    _admin: SessionData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    user = await user_service.update_user(db, user_id, body)
    return UserEnvelope(user=UserResponse.model_validate(user))


@router.delete(
    "/{user_id}",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Tried to delete own account", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
    },
    summary="Delete a user",
)
async def delete_user(
    user_id: str,
    admin: SessionData = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await user_service.delete_user(db, user_id, admin)
    return SuccessResponse()
