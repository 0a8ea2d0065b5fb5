"""
Pilbum Backend — Auth Route Handlers
======================================

Route Inventory:
    POST /api/auth/login            credentials → session cookie
    POST /api/auth/logout           clears the cookie
    GET  /api/auth/me               current session
    POST /api/auth/change-password  new password, re-issued cookie
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.database import get_db_session
from pilbum.dependencies import require_login
from pilbum.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    SessionInfo,
)
from pilbum.schemas.common import ErrorResponse, SuccessResponse
from pilbum.services.auth_service import (
    SessionData,
    auth_service,
    clear_session_cookie,
    set_session_cookie,
)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"description": "Username or password missing", "model": ErrorResponse},
        401: {"description": "Wrong credentials", "model": ErrorResponse},
        503: {"description": "Database not initialized", "model": ErrorResponse},
    },
    summary="Log in",
)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> LoginResponse:
    session = await auth_service.login(db, body.username, body.password)
    set_session_cookie(response, session)
    return LoginResponse(must_change_password=session.must_change_password, role=session.role)


@router.post(
    "/logout",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    summary="Log out",
)
async def logout(response: Response) -> SuccessResponse:
    clear_session_cookie(response)
    return SuccessResponse()


@router.get(
    "/me",
    response_model=SessionInfo,
    responses={401: {"description": "Not logged in", "model": ErrorResponse}},
    summary="Current session",
)
async def me(session: SessionData = Depends(require_login)) -> SessionInfo:
    return SessionInfo(
        user_id=session.user_id,
        username=session.username,
        role=session.role,
        must_change_password=session.must_change_password,
    )


@router.post(
    "/change-password",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    responses={
        400: {"description": "New password too short or current password missing", "model": ErrorResponse},
        401: {"description": "Not logged in or current password wrong", "model": ErrorResponse},
        404: {"description": "Account no longer exists", "model": ErrorResponse},
    },
    summary="Change own password",
)
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    updated = await auth_service.change_password(
        db,
        session,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    set_session_cookie(response, updated)
    return SuccessResponse()
