"""
Pilbum Backend — Photo SQLAlchemy Model
=========================================

What:  ORM model for the `photos` table: image URLs, dimensions, Live Photo
       video, the full EXIF field set, GPS, and visibility/sort order.
Who:   PhotoService (CRUD, upload, recovery) and SystemService (counts, sizes).

Table design:
    - UUID primary key; the same id names the storage folder photos/{id}/
    - image_url / thumbnail_url / live_photo_video_url are public URLs returned
      by the storage adapter at upload time
    - blur_data_url is an inline base64 JPEG placeholder (a few hundred bytes)
    - EXIF columns are all nullable: many images carry partial or no EXIF
    - taken_at is the capture time from EXIF; created_at is the upload time

Query patterns:
    - Public gallery:  WHERE is_visible ORDER BY sort_order DESC, created_at DESC
      → idx_photos_visible_sort
    - Admin listing:   ORDER BY sort_order DESC, created_at DESC
      → idx_photos_created_at for the tie-break scan
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    false,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from pilbum.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Photo(Base):
    """A single uploaded photo (optionally a Live Photo) and its metadata."""

    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(String(200), nullable=False, default="", server_default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default="", server_default="")

    # ── Image URLs ────────────────────────────────────────────────────────
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[str] = mapped_column(Text, nullable=False)
    blur_data_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Live Photo ────────────────────────────────────────────────────────
    is_live_photo: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    live_photo_video_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── EXIF: camera ──────────────────────────────────────────────────────
    camera_make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    camera_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    lens_model: Mapped[str | None] = mapped_column(String(200), nullable=True)
    lens_make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    software: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # ── EXIF: shooting parameters ─────────────────────────────────────────
    focal_length: Mapped[float | None] = mapped_column(Float, nullable=True)
    focal_length_35mm: Mapped[float | None] = mapped_column(Float, nullable=True)
    aperture: Mapped[float | None] = mapped_column(Float, nullable=True)
    shutter_speed: Mapped[str | None] = mapped_column(String(50), nullable=True)
    exposure_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    iso: Mapped[int | None] = mapped_column(Integer, nullable=True)
    exposure_bias: Mapped[float | None] = mapped_column(Float, nullable=True)
    exposure_program: Mapped[str | None] = mapped_column(String(50), nullable=True)
    exposure_mode: Mapped[str | None] = mapped_column(String(50), nullable=True)
    metering_mode: Mapped[str | None] = mapped_column(String(50), nullable=True)
    flash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    white_balance: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # ── EXIF: image info ──────────────────────────────────────────────────
    color_space: Mapped[str | None] = mapped_column(String(50), nullable=True)
    orientation: Mapped[int | None] = mapped_column(Integer, nullable=True)
    taken_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── GPS ───────────────────────────────────────────────────────────────
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    altitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # ── Metadata ──────────────────────────────────────────────────────────
    original_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_visible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_photos_visible_sort", "is_visible", "sort_order", "created_at"),
        Index("idx_photos_created_at", "created_at"),
    )

    def storage_keys(self) -> list[str]:
        """Object keys this photo occupies in the storage backend."""
        return photo_storage_keys(self.id, self.is_live_photo or bool(self.live_photo_video_url))

    def __repr__(self) -> str:
        return f"<Photo(id={self.id}, title='{self.title}', live={self.is_live_photo})>"


def photo_storage_keys(photo_id: uuid.UUID | str, with_video: bool = False) -> list[str]:
    """photos/{id}/full.jpg, thumb.jpg and, for Live Photos, live.mov."""
    keys = [f"photos/{photo_id}/full.jpg", f"photos/{photo_id}/thumb.jpg"]
    if with_video:
        keys.append(f"photos/{photo_id}/live.mov")
    return keys
