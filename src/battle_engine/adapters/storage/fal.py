"""fal.ai CDN storage.

Uploaded objects get a public URL on the fal CDN, which the video model can
read directly. The CDN offers no delete API.
"""

import os

import fal_client

from battle_engine.adapters.storage.base import StorageProvider, StoredObject, compute_checksum
from battle_engine.config import settings
from battle_engine.domain.errors import UploadError
from battle_engine.logging import get_logger
from battle_engine.services.retry import RetryOptions, with_retry

logger = get_logger(__name__)


class FalStorageProvider(StorageProvider):
    """Upload objects to the fal.ai CDN."""

    def __init__(self, api_key: str | None = None, retry_options: RetryOptions | None = None) -> None:
        self.api_key = api_key or settings.fal_key
        if self.api_key:
            os.environ["FAL_KEY"] = self.api_key
        self.retry_options = retry_options or RetryOptions.from_settings()

    @property
    def name(self) -> str:
        return "fal"

    async def upload(self, data: bytes, key: str, content_type: str) -> StoredObject:
        file_name = key.rsplit("/", 1)[-1]

        async def _upload() -> str:
            return await fal_client.upload_async(data, content_type)

        try:
            url = await with_retry(_upload, self.retry_options, f"fal_upload {file_name}")
        except Exception as e:
            logger.error("fal_upload_failed", key=key, error=str(e))
            raise UploadError(f"Failed to upload {key} to fal CDN: {e}") from e

        logger.info("storage_upload_completed", key=key, size=len(data), url=url[:100])

        return StoredObject(
            key=key,
            url=url,
            size_bytes=len(data),
            content_type=content_type,
            checksum=compute_checksum(data),
        )

    async def delete(self, key: str) -> bool:
        logger.warning("fal_storage_delete_unsupported", key=key)
        return False

    async def health_check(self) -> bool:
        return bool(self.api_key or os.environ.get("FAL_KEY"))
