"""
Pilbum Backend — Local Filesystem Storage
===========================================

What:  Stores objects as files under LOCAL_STORAGE_PATH.
How:   aiofiles for non-blocking writes and deletes; objects are served back
       by the GET /uploads/{path} route, so public URLs are /uploads/{key}.
Who:   Default adapter for NAS and single-machine installs.

Directory Structure:
    data/uploads/
    └── photos/
        └── 3f2b...-uuid/
            ├── full.jpg
            ├── thumb.jpg
            └── live.mov      (Live Photos only)

Security:
    Keys come from our own code, but every key is still resolved and checked
    against the root so a crafted key cannot escape it (../../etc/passwd).
"""

import logging
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from pilbum.config import settings
from pilbum.exceptions import FileStorageError, ValidationError
from pilbum.services.storage.base import StorageAdapter

logger = logging.getLogger(__name__)


class LocalStorageAdapter(StorageAdapter):
    name = "local"

    def __init__(self, root: Optional[str] = None):
        super().__init__(base_url="/uploads")
        self.root = Path(root or settings.local_storage_path).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("Local storage root: %s", self.root)

    def resolve_path(self, key: str) -> Path:
        """
        Absolute path for key.

        Raises:
            ValidationError: The key resolves outside the storage root.
        """
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValidationError(message="无效的文件路径", field="key")
        return path

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        path = self.resolve_path(key)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            raise FileStorageError(context={"key": key, "error": str(e)}) from e

        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return self.get_public_url(key)

    async def delete(self, key: str) -> None:
        path = self.resolve_path(key)
        try:
            await aiofiles.os.remove(path)
            logger.debug("Deleted %s", key)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to delete %s: %s", path, e)
            raise FileStorageError(message="文件删除失败", context={"key": key, "error": str(e)}) from e
