"""
Pilbum Backend — Azure Blob Storage
=====================================

What:  Stores objects as block blobs in one Azure Storage container.
How:   azure-storage-blob client created from a connection string. SDK calls
       block, so they run in a worker thread. Uploads overwrite, set the
       content type and a one-year immutable cache header, and retry
       transient transport errors with tenacity.

Public URL:
    {STORAGE_PUBLIC_BASE_URL or https://{account}.blob.core.windows.net/{container}}/{key}
"""

import asyncio
import logging
import re

from azure.core.exceptions import (
    AzureError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobServiceClient, ContentSettings
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
)

from pilbum.config import settings
from pilbum.exceptions import FileStorageError, StorageNotConfiguredError
from pilbum.services.retry_policy import backoff_wait
from pilbum.services.storage.base import CACHE_CONTROL, StorageAdapter

logger = logging.getLogger(__name__)

ACCOUNT_NAME_PATTERN = re.compile(r"AccountName=([^;]+)")


def account_name_from_connection_string(connection_string: str) -> str | None:
    match = ACCOUNT_NAME_PATTERN.search(connection_string)
    return match.group(1) if match else None


class AzureStorageAdapter(StorageAdapter):
    name = "azure"

    def __init__(self):
        connection_string = settings.azure_storage_connection_string
        if not connection_string:
            raise StorageNotConfiguredError(message="Azure 存储需要 AZURE_STORAGE_CONNECTION_STRING")

        self.container_name = settings.azure_storage_container_name or "photos"
        account = account_name_from_connection_string(connection_string)
        super().__init__(base_url=f"https://{account}.blob.core.windows.net/{self.container_name}")

        service_client = BlobServiceClient.from_connection_string(connection_string)
        self.container_client = service_client.get_container_client(self.container_name)
        logger.info("Azure storage: account=%s container=%s", account, self.container_name)

    @retry(
        retry=retry_if_exception_type((ServiceRequestError, ServiceResponseError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=backoff_wait(),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _upload_blob(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self.container_client.upload_blob,
            name=key,
            data=data,
            overwrite=True,
            content_settings=ContentSettings(
                content_type=content_type,
                cache_control=CACHE_CONTROL,
            ),
        )

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await self._upload_blob(key, data, content_type)
        except AzureError as e:
            logger.error("Azure upload of %s failed: %s", key, e)
            raise FileStorageError(
                context={"key": key, "container": self.container_name, "error": str(e)}
            ) from e
        return self.get_public_url(key)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.container_client.delete_blob, key)
        except ResourceNotFoundError:
            pass
        except AzureError as e:
            logger.warning("Azure delete of %s failed: %s", key, e)
