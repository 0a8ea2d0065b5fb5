"""
Pilbum Backend — Database Session Management
==============================================

What:  Async SQLAlchemy engine, session factory, FastAPI dependency and the
       runtime schema initializer.
How:   Creates an async engine (aiosqlite by default, asyncpg for PostgreSQL),
       provides a session dependency that commits on success and rolls back
       on error, and exposes check_schema()/init_schema() for the setup flow.
Who:   Route handlers via Depends(get_db_session); the /api/admin/db endpoint.

Schema lifecycle:
    A fresh install has no tables. The client calls GET /api/admin/db, sees
    ready=false, then POST /api/admin/db which runs init_schema(): create
    every table that is missing, then seed the default admin account if the
    users table is empty. Both steps are idempotent. Managed deployments can
    run the Alembic migration instead; it produces the same tables.
"""

import logging
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from pilbum.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> Dict[str, Any]:
    """Pool options only apply to server databases; SQLite uses the default pool."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if settings.is_sqlite:
        db_path = settings.sqlite_path
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return options
    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
    )
    return options


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options())

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit, so services
# can serialize ORM objects after the dependency has committed
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata drives create_all and Alembic."""
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises for the global handlers
        5. Always: closes the session
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Schema Check & Initialization ─────────────────────────────────────────
SCHEMA_READY_MESSAGE = "数据库已就绪"
SCHEMA_MISSING_MESSAGE = "数据库尚未初始化，需要创建表结构"


async def check_schema() -> Tuple[bool, str]:
    """
    Probe the users and photos tables.

    Returns:
        (ready, message): message is the Chinese status shown on the setup page.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT id FROM users LIMIT 0"))
            await conn.execute(text("SELECT id FROM photos LIMIT 0"))
        return True, SCHEMA_READY_MESSAGE
    except Exception as e:
        logger.info("Schema check failed: %s", e)
        return False, SCHEMA_MISSING_MESSAGE


async def init_schema() -> bool:
    """
    Create missing tables and seed the default admin account.

    Returns:
        True if the admin account was created by this call.
    """
    # Registers every model with Base.metadata
    from pilbum.models import photo, setting, user  # noqa: F401
    from pilbum.services.passwords import hash_password_async

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(user.User))
        if count:
            return False

        admin_hash = await hash_password_async(settings.admin_default_password)
        session.add(
            user.User(
                username="admin",
                password_hash=admin_hash,
                role="admin",
                display_name="管理员",
                must_change_password=True,
            )
        )
        await session.commit()

    logger.info("Seeded default admin account 'admin'")
    return True


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Close all pooled connections. Called from the app's lifespan on shutdown."""
    await engine.dispose()
