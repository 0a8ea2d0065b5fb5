"""
Pilbum Backend — Storage Adapter Interface
============================================

What:  The contract every storage backend implements.
How:   Keys are slash-separated object names (photos/{id}/full.jpg). upload()
       returns the public URL saved in the photos table; delete() treats a
       missing object as success.
"""

from abc import ABC, abstractmethod

from pilbum.config import settings

CACHE_CONTROL = "public, max-age=31536000, immutable"


class StorageAdapter(ABC):
    """Upload, delete and address objects in one storage backend."""

    name: str = "base"

    def __init__(self, base_url: str):
        # STORAGE_PUBLIC_BASE_URL wins over the adapter's own default
        self.base_url = (settings.storage_public_base_url or base_url).rstrip("/")

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store data under key and return its public URL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object; missing objects are not an error."""

    def get_public_url(self, key: str) -> str:
        return f"{self.base_url}/{key.lstrip('/')}"
