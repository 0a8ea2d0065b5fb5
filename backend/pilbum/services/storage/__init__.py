"""
Pilbum Backend — Storage Adapters
===================================

What:  Pluggable object storage for photo renditions and Live Photo videos.
How:   get_storage() builds the adapter named by STORAGE_PROVIDER once per
       process and returns the same instance afterwards.

Adapters:
    - local:  LocalStorageAdapter  (files under LOCAL_STORAGE_PATH, served at /uploads)
    - s3:     S3StorageAdapter     (boto3, any S3-compatible endpoint)
    - azure:  AzureStorageAdapter  (azure-storage-blob)
"""

from typing import Optional

from pilbum.config import settings
from pilbum.exceptions import StorageNotConfiguredError
from pilbum.services.storage.base import StorageAdapter
from pilbum.services.storage.local import LocalStorageAdapter

_storage: Optional[StorageAdapter] = None


def _create_adapter(provider: str) -> StorageAdapter:
    if provider == "s3":
        from pilbum.services.storage.s3 import S3StorageAdapter
        return S3StorageAdapter()
    if provider == "azure":
        from pilbum.services.storage.azure import AzureStorageAdapter
        return AzureStorageAdapter()
    return LocalStorageAdapter()


def get_storage() -> StorageAdapter:
    """
    Return the process-wide storage adapter.

    Raises:
        StorageNotConfiguredError: The selected provider is missing credentials.
    """
    global _storage
    if _storage is None:
        if not settings.is_storage_configured():
            raise StorageNotConfiguredError(context={"provider": settings.storage_provider})
        _storage = _create_adapter(settings.storage_provider)
    return _storage


def reset_storage() -> None:
    """Forget the cached adapter (tests switch providers between cases)."""
    global _storage
    _storage = None


__all__ = [
    "StorageAdapter",
    "LocalStorageAdapter",
    "get_storage",
    "reset_storage",
]
