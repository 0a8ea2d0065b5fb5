"""
Pilbum Backend — User SQLAlchemy Model
========================================

What:  ORM model for the `users` table (credentials, role, forced-password-change flag).
Who:   AuthService for login/password changes, UserService for admin CRUD.

Table design:
    - UUID primary key, portable between SQLite and PostgreSQL via sa.Uuid
    - username is unique; it is the login name and never changes
    - password_hash is "salt:key" hex (see services/passwords.py)
    - role is 'admin' or 'user'; only admins manage users and settings
    - must_change_password is set for the seeded admin, for new users, and
      after an admin resets a password
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column

from pilbum.database import Base

ROLES = ("admin", "user")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """An account that can log in to the admin dashboard."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    password_hash: Mapped[str] = mapped_column(Text, nullable=False)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="user",
        server_default="user",
    )

    display_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        default="",
        server_default="",
    )

    must_change_password: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
