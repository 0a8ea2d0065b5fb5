"""
Pilbum Backend — User Management Service
==========================================

What:  Admin-only CRUD over accounts.
How:   New accounts and admin password resets always set
       must_change_password, so the holder picks their own password at the
       next login.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.exceptions import ConflictError, NotFoundError, ValidationError
from pilbum.models.user import User
from pilbum.schemas.user import CreateUserRequest, UpdateUserRequest
from pilbum.services.auth_service import SessionData
from pilbum.services.passwords import hash_password_async

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "用户不存在"
USERNAME_TAKEN = "用户名已存在"


def _parse_id(user_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise NotFoundError(message=USER_NOT_FOUND, resource="user", resource_id=str(user_id)) from None


class UserService:

    async def list_users(self, db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).order_by(User.created_at.desc()))
        return list(result.scalars().all())

    async def get_user(self, db: AsyncSession, user_id: str) -> User:
        user = await db.get(User, _parse_id(user_id))
        if user is None:
            raise NotFoundError(message=USER_NOT_FOUND, resource="user", resource_id=str(user_id))
        return user

    async def create_user(self, db: AsyncSession, request: CreateUserRequest) -> User:
        """
        Raises:
            ConflictError: The username is taken.
        """
        existing = await db.execute(select(User.id).where(User.username == request.username).limit(1))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(message=USERNAME_TAKEN, context={"username": request.username})

        user = User(
            username=request.username,
            password_hash=await hash_password_async(request.password),
            role=request.role,
            display_name=request.display_name or "",
            must_change_password=True,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent create for the same name
            await db.rollback()
            raise ConflictError(message=USERNAME_TAKEN, context={"username": request.username}) from e

        logger.info("Created user %s (role=%s)", user.username, user.role)
        return user

    async def update_user(self, db: AsyncSession, user_id: str, request: UpdateUserRequest) -> User:
        user = await self.get_user(db, user_id)

        if request.display_name is not None:
            user.display_name = request.display_name
        if request.role is not None:
            user.role = request.role
        if request.must_change_password is not None:
            user.must_change_password = request.must_change_password
        if request.password:
            user.password_hash = await hash_password_async(request.password)
            user.must_change_password = True
        user.updated_at = datetime.now(timezone.utc)

        await db.flush()
        logger.info("Updated user %s", user.username)
        return user

    async def delete_user(self, db: AsyncSession, user_id: str, session: SessionData) -> None:
        """
        Raises:
            ValidationError: An admin tried to delete their own account.
            NotFoundError: Unknown id.
        """
        target = _parse_id(user_id)
        if target == session.user_id:
            raise ValidationError(message="不能删除自己的账户", field="id")

        user = await self.get_user(db, user_id)
        await db.delete(user)
        await db.flush()
        logger.info("Deleted user %s (by %s)", user.username, session.username)


user_service = UserService()
