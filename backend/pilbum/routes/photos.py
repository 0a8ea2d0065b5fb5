"""
Pilbum Backend — Photo Route Handlers
=======================================

What:  Gallery reads (public) and photo management (login required).
How:   Thin handlers: parse the request, call PhotoService, shape the reply.

Route Inventory:
    GET    /api/photos                 paginated list
    GET    /api/photos/{id}            detail
    PATCH  /api/photos/{id}            metadata edit
    DELETE /api/photos/{id}            delete one
    POST   /api/photos/batch-delete    delete up to 100
    POST   /api/upload                 multipart upload (image, video, title, description)

Visibility:
    Anonymous callers only ever see is_visible photos. Logged-in callers see
    hidden ones on the detail route, and in the list when they pass
    includeHidden=true (the dashboard does).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from pilbum.config import settings
from pilbum.database import get_db_session
from pilbum.dependencies import get_optional_session, require_login
from pilbum.exceptions import ValidationError
from pilbum.schemas.common import ErrorResponse, SuccessResponse
from pilbum.schemas.photo import (
    BatchDeleteRequest,
    BatchDeleteResponse,
    PhotoEnvelope,
    PhotoListResponse,
    PhotoResponse,
    PhotoUpdate,
)
from pilbum.services.auth_service import SessionData
from pilbum.services.photo_service import UploadedFile, photo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Photos"])


@router.get(
    "/photos",
    response_model=PhotoListResponse,
    summary="List photos",
    description=(
        "Photos ordered by sortOrder (descending), then newest first. "
        "The total is also returned in the X-Total-Count header."
    ),
)
async def list_photos(
    response: Response,
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    include_hidden: bool = Query(
        default=False,
        alias="includeHidden",
        description="Include hidden photos (ignored for anonymous callers)",
    ),
    session: Optional[SessionData] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoListResponse:
    result = await photo_service.list_photos(
        db=db,
        page=page,
        limit=limit,
        include_hidden=include_hidden and session is not None,
    )
    response.headers["X-Total-Count"] = str(result.pagination.total)
    return result


@router.get(
    "/photos/{photo_id}",
    response_model=PhotoEnvelope,
    responses={404: {"description": "Photo not found", "model": ErrorResponse}},
    summary="Get a single photo",
)
async def get_photo(
    photo_id: str,
    session: Optional[SessionData] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoEnvelope:
    photo = await photo_service.get_photo(db, photo_id, include_hidden=session is not None)
    return PhotoEnvelope(photo=PhotoResponse.model_validate(photo))


@router.patch(
    "/photos/{photo_id}",
    response_model=PhotoEnvelope,
    responses={
        400: {"description": "Invalid field value", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
    },
    summary="Edit photo metadata",
    description="Only the fields present in the body change; null clears a nullable field.",
)
async def update_photo(
    photo_id: str,
    patch: PhotoUpdate,
    _session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoEnvelope:
    photo = await photo_service.update_photo(db, photo_id, patch)
    return PhotoEnvelope(photo=PhotoResponse.model_validate(photo))


@router.delete(
    "/photos/{photo_id}",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    responses={
        401: {"description": "Not logged in", "model": ErrorResponse},
        404: {"description": "Photo not found", "model": ErrorResponse},
    },
    summary="Delete a photo and its stored files",
)
async def delete_photo(
    photo_id: str,
    _session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await photo_service.delete_photo(db, photo_id)
    return SuccessResponse()


@router.post(
    "/photos/batch-delete",
    response_model=BatchDeleteResponse,
    responses={
        400: {"description": "Empty, oversized or malformed id list", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        404: {"description": "None of the photos exist", "model": ErrorResponse},
    },
    summary="Delete several photos",
)
async def batch_delete(
    body: BatchDeleteRequest,
    _session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> BatchDeleteResponse:
    return await photo_service.batch_delete(db, body.uuids())


@router.post(
    "/upload",
    status_code=201,
    response_model=PhotoEnvelope,
    responses={
        400: {"description": "Missing, oversized or unreadable file", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        503: {"description": "Storage not configured", "model": ErrorResponse},
    },
    summary="Upload a photo",
    description=(
        "multipart/form-data with `image` (JPEG, PNG, WebP, HEIC...), optional "
        "`video` (Live Photo .mov), `title` and `description`."
    ),
)
async def upload_photo(
    image: Optional[UploadFile] = File(default=None, description="Image file"),
    video: Optional[UploadFile] = File(default=None, description="Live Photo video"),
    title: str = Form(default=""),
    description: str = Form(default=""),
    _session: SessionData = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoEnvelope:
    if image is None:
        raise ValidationError(message="没有提供图片文件", field="image")

    # Reject by the declared size before buffering the body
    if image.size is not None and image.size > settings.max_image_size:
        raise ValidationError(
            message=f"图片大小不能超过 {settings.max_image_size // (1024 * 1024)}MB",
            field="image",
        )

    try:
        image_file = UploadedFile(
            data=await image.read(),
            filename=image.filename,
            content_type=image.content_type,
        )
        video_file = None
        if video is not None:
            video_file = UploadedFile(
                data=await video.read(),
                filename=video.filename,
                content_type=video.content_type,
            )
    finally:
        await image.close()
        if video is not None:
            await video.close()

    logger.info(
        "Received upload: filename=%s, size=%d bytes, live=%s",
        image_file.filename or "unknown",
        len(image_file.data),
        video_file is not None,
    )

    photo = await photo_service.upload_photo(
        db,
        image=image_file,
        video=video_file,
        title=title,
        description=description,
    )
    return PhotoEnvelope(photo=PhotoResponse.model_validate(photo))
