"""
Pilbum Backend — Auth Schemas
===============================

Request and response bodies for /api/auth/*.
"""

from typing import Optional
from uuid import UUID

from pydantic import field_validator

from pilbum.schemas.common import CamelModel, invalid

MIN_NEW_PASSWORD_LENGTH = 8


class LoginRequest(CamelModel):
    username: str = ""
    password: str = ""

    model_config = {"validate_default": True}

    @field_validator("username")
    @classmethod
    def username_required(cls, v: str) -> str:
        if not v:
            raise invalid("用户名不能为空")
        return v

    @field_validator("password")
    @classmethod
    def password_required(cls, v: str) -> str:
        if not v:
            raise invalid("密码不能为空")
        return v


class LoginResponse(CamelModel):
    success: bool = True
    must_change_password: bool
    role: str


class ChangePasswordRequest(CamelModel):
    """
    current_password may be omitted only while the account is flagged
    must_change_password (first login, or after an admin reset).
    """

    current_password: Optional[str] = None
    new_password: str = ""

    model_config = {"validate_default": True}

    @field_validator("new_password")
    @classmethod
    def new_password_length(cls, v: str) -> str:
        if len(v) < MIN_NEW_PASSWORD_LENGTH:
            raise invalid(f"新密码至少需要 {MIN_NEW_PASSWORD_LENGTH} 个字符")
        return v


class SessionInfo(CamelModel):
    """Returned by GET /api/auth/me."""

    user_id: UUID
    username: str
    role: str
    must_change_password: bool = False
