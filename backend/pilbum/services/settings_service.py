"""
Pilbum Backend — Site Settings Service
========================================

What:  Read and upsert the key-value site settings.
How:   Public reads overlay stored rows on built-in defaults and fall back to
       the defaults when the table is unavailable, so the gallery renders
       before the database is set up.
"""

import logging
from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.config import settings
from pilbum.models.setting import SHOW_LOGIN_BUTTON, SITE_NAME, Setting

logger = logging.getLogger(__name__)


def default_settings() -> Dict[str, str]:
    return {
        SHOW_LOGIN_BUTTON: "false",
        SITE_NAME: settings.site_name,
    }


class SettingsService:

    async def stored_settings(self, db: AsyncSession) -> Dict[str, str]:
        result = await db.execute(select(Setting))
        return {row.key: row.value for row in result.scalars().all()}

    async def public_settings(self, db: AsyncSession) -> Dict[str, str]:
        values = default_settings()
        try:
            values.update(await self.stored_settings(db))
        except DBAPIError as e:
            logger.warning("Settings unavailable, serving defaults: %s", e)
            await db.rollback()
        return values

    async def set_setting(self, db: AsyncSession, key: str, value: str) -> Setting:
        now = datetime.now(timezone.utc)
        row = await db.get(Setting, key)
        if row is None:
            row = Setting(key=key, value=value, updated_at=now)
            db.add(row)
        else:
            row.value = value
            row.updated_at = now
        await db.flush()
        logger.info("Setting %s updated", key)
        return row

    async def get_site_name(self, db: AsyncSession) -> str:
        try:
            row = await db.get(Setting, SITE_NAME)
        except DBAPIError:
            await db.rollback()
            return settings.site_name
        return row.value if row is not None and row.value else settings.site_name


settings_service = SettingsService()
