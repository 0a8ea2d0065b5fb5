"""
Pilbum Backend — S3-Compatible Storage
========================================

What:  Stores objects in any S3-compatible bucket (AWS S3, Cloudflare R2,
       MinIO, Backblaze B2).
How:   boto3 client with a custom endpoint and path-style addressing (R2 and
       MinIO need it). boto3 is synchronous, so every call runs in a worker
       thread. Uploads retry transient failures with tenacity.

Public URL:
    {STORAGE_PUBLIC_BASE_URL or S3_ENDPOINT/S3_BUCKET}/{key}
"""

import asyncio
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
)

from pilbum.config import settings
from pilbum.exceptions import FileStorageError, StorageNotConfiguredError
from pilbum.services.retry_policy import backoff_wait
from pilbum.services.storage.base import CACHE_CONTROL, StorageAdapter

logger = logging.getLogger(__name__)

# ClientError codes worth another attempt; auth and not-found errors are final
TRANSIENT_ERROR_CODES = {
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "Throttling",
    "ThrottlingException",
}


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return code in TRANSIENT_ERROR_CODES or status >= 500
    return isinstance(exc, (BotoCoreError, ConnectionError, TimeoutError))


class S3StorageAdapter(StorageAdapter):
    name = "s3"

    def __init__(self):
        if not (
            settings.s3_endpoint
            and settings.s3_bucket
            and settings.s3_access_key_id
            and settings.s3_secret_access_key
        ):
            raise StorageNotConfiguredError(
                message="S3 存储需要 S3_ENDPOINT、S3_BUCKET、S3_ACCESS_KEY_ID 和 S3_SECRET_ACCESS_KEY",
            )

        endpoint = settings.s3_endpoint.rstrip("/")
        super().__init__(base_url=f"{endpoint}/{settings.s3_bucket}")
        self.bucket = settings.s3_bucket
        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=Config(s3={"addressing_style": "path"}),
        )
        logger.info("S3 storage: endpoint=%s bucket=%s", endpoint, self.bucket)

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=backoff_wait(),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _put_object(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            CacheControl=CACHE_CONTROL,
        )

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await self._put_object(key, data, content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 upload of %s failed: %s", key, e)
            raise FileStorageError(context={"key": key, "bucket": self.bucket, "error": str(e)}) from e
        return self.get_public_url(key)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            # S3 DeleteObject is already idempotent; anything else is logged only
            logger.warning("S3 delete of %s failed: %s", key, e)
