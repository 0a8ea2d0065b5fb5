"""
Pilbum Backend — Setting SQLAlchemy Model
===========================================

What:  Key-value rows for site configuration editable from the dashboard.
How:   Values are always stored as strings; booleans as "true"/"false".
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pilbum.database import Base

# Known keys
SHOW_LOGIN_BUTTON = "show_login_button"
SITE_NAME = "site_name"


class Setting(Base):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Setting(key='{self.key}', value='{self.value}')>"
