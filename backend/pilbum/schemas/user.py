"""
Pilbum Backend — User Management Schemas
==========================================

Bodies for /api/admin/users. Password hashes never leave the service layer.
"""

import re
from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import AfterValidator

from pilbum.models.user import ROLES
from pilbum.schemas.common import CamelModel, invalid

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
MIN_PASSWORD_LENGTH = 6


def _check_username(v: str) -> str:
    if len(v) < 2:
        raise invalid("用户名至少需要 2 个字符")
    if len(v) > 50:
        raise invalid("用户名不能超过 50 个字符")
    if not USERNAME_PATTERN.match(v):
        raise invalid("用户名只能包含字母、数字和下划线")
    return v


def _check_password(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise invalid(f"密码至少需要 {MIN_PASSWORD_LENGTH} 个字符")
    return v


def _check_role(v: str) -> str:
    if v not in ROLES:
        raise invalid("角色只能是 admin 或 user")
    return v


def _check_display_name(v: str) -> str:
    if len(v) > 100:
        raise invalid("显示名称不能超过 100 个字符")
    return v


Username = Annotated[str, AfterValidator(_check_username)]
Password = Annotated[str, AfterValidator(_check_password)]
Role = Annotated[str, AfterValidator(_check_role)]
DisplayName = Annotated[str, AfterValidator(_check_display_name)]


class CreateUserRequest(CamelModel):
    username: Username = ""
    password: Password = ""
    role: Role = "user"
    display_name: Optional[DisplayName] = None

    model_config = {"validate_default": True}


class UpdateUserRequest(CamelModel):
    """Only the fields present in the request body are applied."""

    role: Optional[Role] = None
    display_name: Optional[DisplayName] = None
    password: Optional[Password] = None
    must_change_password: Optional[bool] = None


class UserResponse(CamelModel):
    id: UUID
    username: str
    role: str
    display_name: Optional[str] = ""
    must_change_password: bool = False
    created_at: Optional[datetime] = None


class UserEnvelope(CamelModel):
    user: UserResponse


class UserListResponse(CamelModel):
    users: List[UserResponse]
