"""
Pilbum Backend — Local Upload Files
=====================================

What:  Serves objects written by LocalStorageAdapter at /uploads/{key}.
How:   The key is resolved through the adapter, which rejects paths that
       escape the storage root. Objects never change once written (a new
       upload gets a new photo id), so responses are cacheable for a year.

Answers 404 unless STORAGE_PROVIDER=local; remote backends hand out their
own public URLs.
"""

import mimetypes

from fastapi import APIRouter
from fastapi.responses import FileResponse

from pilbum.config import settings
from pilbum.exceptions import NotFoundError
from pilbum.schemas.common import ErrorResponse
from pilbum.services.storage import LocalStorageAdapter, get_storage
from pilbum.services.storage.base import CACHE_CONTROL

router = APIRouter(tags=["Uploads"])


@router.get(
    "/uploads/{file_path:path}",
    summary="Serve a locally stored photo or video",
    responses={
        200: {"description": "File contents"},
        400: {"description": "Path escapes the storage root", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_upload(file_path: str) -> FileResponse:
    if settings.storage_provider != "local":
        raise NotFoundError(message="文件不存在", resource="file", resource_id=file_path)

    storage = get_storage()
    if not isinstance(storage, LocalStorageAdapter):
        raise NotFoundError(message="文件不存在", resource="file", resource_id=file_path)

    path = storage.resolve_path(file_path)
    if not path.is_file():
        raise NotFoundError(message="文件不存在", resource="file", resource_id=file_path)

    media_type, _ = mimetypes.guess_type(path.name)
    if path.suffix.lower() == ".mov":
        media_type = "video/quicktime"
    return FileResponse(
        path=str(path),
        media_type=media_type or "application/octet-stream",
        headers={"Cache-Control": CACHE_CONTROL},
    )
