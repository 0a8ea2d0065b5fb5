"""
Pilbum Backend — Authentication & Session Service
===================================================

What:  Login, logout, password change and the signed session cookie.
How:   The session is a small HS256 JWT (PyJWT) in an HttpOnly, SameSite=Lax
       cookie. It carries user id, username, role and the must-change-password
       flag, so request authorization needs no database round trip.
Who:   /api/auth/* routes and the require_login/require_admin dependencies.

Session payload:
    {"sub": "<user uuid>", "username": "admin", "role": "admin",
     "mcp": true, "iat": 1700000000, "exp": 1700604800}

Role and flag changes made by an admin take effect at the user's next login;
change_password re-issues the caller's own cookie immediately.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Response
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.config import settings
from pilbum.exceptions import (
    AuthenticationError,
    DatabaseNotReadyError,
    NotFoundError,
    ValidationError,
)
from pilbum.models.user import User
from pilbum.services.passwords import hash_password_async, verify_password_async

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

INVALID_CREDENTIALS = "用户名或密码错误"


@dataclass
class SessionData:
    user_id: UUID
    username: str
    role: str
    must_change_password: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ── Token & Cookie ────────────────────────────────────────────────────────

def encode_session(session: SessionData) -> str:
    now = int(time.time())
    payload = {
        "sub": str(session.user_id),
        "username": session.username,
        "role": session.role,
        "mcp": session.must_change_password,
        "iat": now,
        "exp": now + settings.session_max_age,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=JWT_ALGORITHM)


def decode_session(token: Optional[str]) -> Optional[SessionData]:
    """Session from a cookie value; None when absent, expired, tampered or malformed."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[JWT_ALGORITHM])
        return SessionData(
            user_id=UUID(payload["sub"]),
            username=payload["username"],
            role=payload["role"],
            must_change_password=bool(payload.get("mcp", False)),
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Session cookie expired")
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        logger.info("Rejected session cookie: %s", e)
    return None


def set_session_cookie(response: Response, session: SessionData) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=encode_session(session),
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


# ── Account Operations ────────────────────────────────────────────────────

class AuthService:
    """Credential checks against the users table."""

    async def login(self, db: AsyncSession, username: str, password: str) -> SessionData:
        """
        Verify credentials and build the session for the user.

        Raises:
            AuthenticationError: Unknown username or wrong password (same message for both).
            DatabaseNotReadyError: The users table does not exist yet.
        """
        try:
            result = await db.execute(select(User).where(User.username == username).limit(1))
            user = result.scalar_one_or_none()
        except DBAPIError as e:
            logger.warning("Login failed, database not ready: %s", e)
            raise DatabaseNotReadyError() from e

        if user is None or not await verify_password_async(password, user.password_hash):
            logger.info("Failed login for username=%r", username)
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        logger.info("User %s logged in (role=%s)", user.username, user.role)
        return SessionData(
            user_id=user.id,
            username=user.username,
            role=user.role,
            must_change_password=user.must_change_password,
        )

    async def change_password(
        self,
        db: AsyncSession,
        session: SessionData,
        current_password: Optional[str],
        new_password: str,
    ) -> SessionData:
        """
        Replace the caller's password and clear the must-change flag.

        The current password is only skipped while the account is flagged
        must_change_password (first login or after an admin reset).

        Raises:
            NotFoundError: The account was deleted after the session was issued.
            ValidationError: Current password missing.
            AuthenticationError: Current password wrong.
        """
        user = await db.get(User, session.user_id)
        if user is None:
            raise NotFoundError(message="用户不存在", resource="user", resource_id=str(session.user_id))

        if not user.must_change_password:
            if not current_password:
                raise ValidationError(message="请输入当前密码", field="currentPassword")
            if not await verify_password_async(current_password, user.password_hash):
                raise AuthenticationError(message="当前密码错误")

        user.password_hash = await hash_password_async(new_password)
        user.must_change_password = False
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()

        logger.info("User %s changed password", user.username)
        return SessionData(
            user_id=user.id,
            username=user.username,
            role=user.role,
            must_change_password=False,
        )


auth_service = AuthService()
