"""
Pilbum Backend — Photo Service (Business Logic Orchestrator)
==============================================================

What:  Listing, detail, metadata edits, deletion, upload and disk recovery
       for photos.
How:   Composes the EXIF reader, the image pipeline, the storage adapter and
       the photos table. Stateless: every call receives its own db session.
Who:   /api/photos/*, /api/upload and /api/admin/recover-photos routes.

Upload Flow (POST /api/upload):
    ┌──────────┐    ┌──────────┐    ┌──────────────┐    ┌──────────────┐    ┌──────────┐
    │  Size    │───▶│  EXIF    │───▶│  Renditions  │───▶│  Storage     │───▶│  Insert  │
    │  checks  │    │  (raw)   │    │  full/thumb/ │    │  full, thumb │    │  row     │
    └──────────┘    └──────────┘    │  blur        │    │  (live.mov)  │    └──────────┘
                                    └──────────────┘    └──────────────┘

    EXIF is read from the original bytes: re-encoding drops it.
    On any failure after the first object is stored, every object already
    written for the photo is deleted again before the error propagates.
"""

import asyncio
import logging
import math
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.config import settings
from pilbum.exceptions import (
    DatabaseError,
    FileStorageError,
    NotFoundError,
    PilbumError,
    ValidationError,
)
from pilbum.models.photo import Photo
from pilbum.schemas.photo import (
    BatchDeleteResponse,
    Pagination,
    PhotoListResponse,
    PhotoResponse,
    PhotoUpdate,
    RecoveryDetails,
    RecoveryResponse,
)
from pilbum.services.exif_service import ExifData, extract_exif
from pilbum.services.image_service import format_file_size, process_image, read_dimensions
from pilbum.services.storage import LocalStorageAdapter, StorageAdapter, get_storage

logger = logging.getLogger(__name__)

PHOTO_NOT_FOUND = "照片不存在"
VIDEO_CONTENT_TYPE = "video/quicktime"


@dataclass
class UploadedFile:
    """A multipart part read into memory by the route."""
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


def _parse_id(photo_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(photo_id))
    except ValueError:
        raise NotFoundError(message=PHOTO_NOT_FOUND, resource="photo", resource_id=str(photo_id)) from None


def _size_limit_message(limit: int, kind: str) -> str:
    return f"{kind}大小不能超过 {limit // (1024 * 1024)}MB"


class PhotoService:
    """
    Business logic layer for photos.

    Error Handling Strategy:
        Our own exceptions propagate unchanged. Unexpected database failures in
        write paths are wrapped in DatabaseError so driver details never reach
        the client; the read-only gallery listing degrades to an empty page.
    """

    # ── Read ──────────────────────────────────────────────────────────────

    async def list_photos(
        self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        include_hidden: bool = False,
    ) -> PhotoListResponse:
        """
        One page of photos, highest sort_order first, newest first within it.

        Query plan (public gallery):
            SELECT * FROM photos WHERE is_visible
            ORDER BY sort_order DESC, created_at DESC LIMIT :limit OFFSET :offset
            → idx_photos_visible_sort

        A database without tables yields an empty page so a fresh install can
        render the gallery before setup.
        """
        query = select(Photo)
        count_query = select(func.count()).select_from(Photo)
        if not include_hidden:
            query = query.where(Photo.is_visible.is_(True))
            count_query = count_query.where(Photo.is_visible.is_(True))

        query = (
            query.order_by(Photo.sort_order.desc(), Photo.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )

        try:
            total = (await db.execute(count_query)).scalar_one()
            rows = (await db.execute(query)).scalars().all()
        except DBAPIError as e:
            logger.warning("Photo listing unavailable, returning empty page: %s", e)
            await db.rollback()
            total, rows = 0, []

        return PhotoListResponse(
            photos=[PhotoResponse.model_validate(row) for row in rows],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if limit else 0,
            ),
        )

    async def get_photo(self, db: AsyncSession, photo_id: str, include_hidden: bool = False) -> Photo:
        """
        Raises:
            NotFoundError: Unknown id, or a hidden photo requested anonymously.
        """
        photo = await db.get(Photo, _parse_id(photo_id))
        if photo is None or (not photo.is_visible and not include_hidden):
            raise NotFoundError(message=PHOTO_NOT_FOUND, resource="photo", resource_id=str(photo_id))
        return photo

    # ── Edit ──────────────────────────────────────────────────────────────

    async def update_photo(self, db: AsyncSession, photo_id: str, patch: PhotoUpdate) -> Photo:
        photo = await self.get_photo(db, photo_id, include_hidden=True)

        changes = patch.changes()
        for column, value in changes.items():
            setattr(photo, column, value)
        photo.updated_at = datetime.now(timezone.utc)

        await db.flush()
        logger.info("Photo %s updated: %s", photo.id, ", ".join(sorted(changes)) or "(touch)")
        return photo

    # ── Delete ────────────────────────────────────────────────────────────

    async def _delete_objects(self, storage: StorageAdapter, photos: List[Photo]) -> None:
        keys = [key for photo in photos for key in photo.storage_keys()]
        await asyncio.gather(*(storage.delete(key) for key in keys))

    async def delete_photo(self, db: AsyncSession, photo_id: str) -> None:
        """Remove the stored renditions (and video), then the row."""
        photo = await self.get_photo(db, photo_id, include_hidden=True)
        await self._delete_objects(get_storage(), [photo])
        await db.delete(photo)
        await db.flush()
        logger.info("Photo %s deleted", photo.id)

    async def batch_delete(self, db: AsyncSession, ids: List[uuid.UUID]) -> BatchDeleteResponse:
        """
        Raises:
            NotFoundError: None of the ids exist.
        """
        result = await db.execute(select(Photo).where(Photo.id.in_(ids)))
        photos = list(result.scalars().all())
        if not photos:
            raise NotFoundError(message="没有找到要删除的照片", resource="photo")

        await self._delete_objects(get_storage(), photos)
        await db.execute(delete(Photo).where(Photo.id.in_([photo.id for photo in photos])))
        await db.flush()

        logger.info("Batch deleted %d of %d requested photos", len(photos), len(ids))
        return BatchDeleteResponse(deleted=len(photos))

    # ── Upload ────────────────────────────────────────────────────────────

    def _check_sizes(self, image: UploadedFile, video: Optional[UploadedFile]) -> None:
        if not image.data:
            raise ValidationError(message="没有提供图片文件", field="image")
        if len(image.data) > settings.max_image_size:
            raise ValidationError(
                message=_size_limit_message(settings.max_image_size, "图片"),
                field="image",
                context={"size": len(image.data), "limit": settings.max_image_size},
            )
        if video is not None and len(video.data) > settings.max_video_size:
            raise ValidationError(
                message=_size_limit_message(settings.max_video_size, "视频"),
                field="video",
                context={"size": len(video.data), "limit": settings.max_video_size},
            )

    async def upload_photo(
        self,
        db: AsyncSession,
        image: UploadedFile,
        video: Optional[UploadedFile] = None,
        title: str = "",
        description: str = "",
    ) -> Photo:
        """
        Store a new photo (optionally a Live Photo) and insert its row.

        Error Recovery:
            Invalid or oversized input → ValidationError (400), nothing stored
            Storage failure           → FileStorageError (500), stored objects removed
            Insert failure            → DatabaseError (500), stored objects removed

        Raises:
            ValidationError: Missing, oversized or undecodable image; oversized video.
            StorageNotConfiguredError: No usable storage backend.
            FileStorageError: The backend rejected an object.
            DatabaseError: The row could not be inserted.
        """
        if video is not None and not video.data:
            video = None
        self._check_sizes(image, video)
        storage = get_storage()

        exif = await asyncio.to_thread(extract_exif, image.data)
        processed = await process_image(image.data)

        photo_id = uuid.uuid4()
        full_key, thumb_key, video_key = (
            f"photos/{photo_id}/full.jpg",
            f"photos/{photo_id}/thumb.jpg",
            f"photos/{photo_id}/live.mov",
        )
        stored: List[str] = []

        try:
            image_url = await storage.upload(full_key, processed.full_bytes, "image/jpeg")
            stored.append(full_key)
            thumbnail_url = await storage.upload(thumb_key, processed.thumbnail_bytes, "image/jpeg")
            stored.append(thumb_key)

            video_url: Optional[str] = None
            if video is not None:
                video_url = await storage.upload(video_key, video.data, VIDEO_CONTENT_TYPE)
                stored.append(video_key)

            photo = Photo(
                id=photo_id,
                title=title or "",
                description=description or "",
                image_url=image_url,
                thumbnail_url=thumbnail_url,
                blur_data_url=processed.blur_data_url,
                width=processed.width,
                height=processed.height,
                is_live_photo=video is not None,
                live_photo_video_url=video_url,
                original_filename=image.filename,
                file_size=len(image.data),
                mime_type=image.content_type,
                **exif.photo_fields(),
            )
            db.add(photo)
            await db.flush()

        except Exception as e:
            await self._discard(storage, stored)
            if isinstance(e, PilbumError):
                raise
            logger.error("Photo insert failed for %s: %s", photo_id, e, exc_info=True)
            raise DatabaseError(message="照片保存失败", context={"photo_id": str(photo_id)}) from e

        logger.info(
            "Photo %s uploaded (%dx%d, %s, live=%s)",
            photo_id, processed.width, processed.height, format_file_size(len(image.data)), video is not None,
        )
        return photo

    async def _discard(self, storage: StorageAdapter, keys: List[str]) -> None:
        for key in keys:
            try:
                await storage.delete(key)
            except FileStorageError as e:
                logger.error("Could not remove %s after failed upload: %s", key, e.message)

    # ── Recovery ──────────────────────────────────────────────────────────

    async def recover_photos(self, db: AsyncSession) -> RecoveryResponse:
        """
        Rebuild rows for photo folders on local disk that have no database row.

        Scans {LOCAL_STORAGE_PATH}/photos/<uuid>/. A folder needs full.jpg;
        live.mov marks a Live Photo. Folders whose name is not a UUID are
        ignored, folders already in the table are skipped.

        Raises:
            ValidationError: Storage is not the local filesystem.
            NotFoundError: The photos directory does not exist.
        """
        if settings.storage_provider != "local":
            raise ValidationError(message="仅本地存储支持照片恢复", field="storage")

        storage = LocalStorageAdapter()
        photos_dir = storage.root / "photos"
        if not photos_dir.is_dir():
            raise NotFoundError(message="未找到上传目录", resource="directory", resource_id="photos")

        candidates = await asyncio.to_thread(_list_photo_dirs, photos_dir)
        if candidates:
            result = await db.execute(select(Photo.id).where(Photo.id.in_([pid for pid, _ in candidates])))
            existing = set(result.scalars().all())
        else:
            existing = set()

        recovered: List[str] = []
        errors: List[str] = []
        for photo_id, photo_dir in candidates:
            if photo_id in existing:
                continue
            try:
                fields = await asyncio.to_thread(_read_photo_dir, photo_dir)
            except FileNotFoundError:
                errors.append(f"{photo_id}: full.jpg not found")
                continue
            except (OSError, PilbumError) as e:
                errors.append(f"{photo_id}: {e}")
                continue

            has_video = fields.pop("has_video")
            db.add(Photo(
                id=photo_id,
                title="",
                description="",
                image_url=storage.get_public_url(f"photos/{photo_id}/full.jpg"),
                thumbnail_url=storage.get_public_url(f"photos/{photo_id}/thumb.jpg"),
                is_live_photo=has_video,
                live_photo_video_url=(
                    storage.get_public_url(f"photos/{photo_id}/live.mov") if has_video else None
                ),
                mime_type="image/jpeg",
                original_filename=None,
                **fields,
            ))
            recovered.append(str(photo_id))

        await db.flush()
        logger.info("Recovery: %d recovered, %d errors", len(recovered), len(errors))
        return RecoveryResponse(
            recovered=len(recovered),
            errors=len(errors),
            details=RecoveryDetails(recovered=recovered, errors=errors),
        )


def _list_photo_dirs(photos_dir: Path) -> List[Tuple[uuid.UUID, Path]]:
    found = []
    for entry in sorted(photos_dir.iterdir()):
        if not entry.is_dir():
            continue
        try:
            found.append((uuid.UUID(entry.name), entry))
        except ValueError:
            logger.debug("Skipping non-photo directory %s", entry.name)
    return found


def _read_photo_dir(photo_dir: Path) -> Dict[str, Any]:
    """Column values recoverable from a photo folder (blocking)."""
    full_path = photo_dir / "full.jpg"
    data = full_path.read_bytes()
    width, height = read_dimensions(data)
    exif: ExifData = extract_exif(data)
    return {
        **exif.photo_fields(),
        "width": width,
        "height": height,
        "file_size": os.stat(full_path).st_size,
        "has_video": (photo_dir / "live.mov").is_file(),
    }


photo_service = PhotoService()
