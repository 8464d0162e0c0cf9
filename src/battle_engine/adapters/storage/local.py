"""Local filesystem storage, served over HTTP by the API."""

import asyncio
from pathlib import Path, PurePosixPath

from battle_engine.adapters.storage.base import StorageProvider, StoredObject, compute_checksum
from battle_engine.config import settings
from battle_engine.domain.errors import UploadError
from battle_engine.logging import get_logger

logger = get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Store objects under a base directory.

    Keys may contain ``/`` to group objects (``frames/<session>/2.jpg``).
    The public URL is ``public_base_url`` joined with the key; the FastAPI app
    mounts ``base_path`` at ``/media`` so the default URLs resolve.
    """

    def __init__(
        self,
        base_path: Path | None = None,
        public_base_url: str | None = None,
        create_dirs: bool = True,
    ) -> None:
        """Initialize storage provider.

        Args:
            base_path: Base directory for stored objects. Defaults to settings.storage_path
            public_base_url: URL prefix for stored objects
            create_dirs: Whether to create the base directory if it doesn't exist
        """
        self.base_path = base_path or settings.storage_path
        self.public_base_url = (public_base_url or settings.storage_public_base_url).rstrip("/")

        if create_dirs:
            self.base_path.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "local"

    def _resolve(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or any(part in ("..", "/") for part in parts):
            raise UploadError(f"Invalid storage key: {key!r}", recoverable=False)
        return self.base_path.joinpath(*parts)

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    async def upload(self, data: bytes, key: str, content_type: str) -> StoredObject:
        file_path = self._resolve(key)

        def _write() -> None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = file_path.with_name(f".{file_path.name}.tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(file_path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error("storage_write_failed", key=key, error=str(e))
            raise UploadError(f"Failed to store {key}: {e}") from e

        logger.info("storage_upload_completed", key=key, size=len(data), provider=self.name)

        return StoredObject(
            key=key,
            url=self.url_for(key),
            size_bytes=len(data),
            content_type=content_type,
            checksum=compute_checksum(data),
            metadata={"file_path": str(file_path)},
        )

    async def delete(self, key: str) -> bool:
        file_path = self._resolve(key)
        if not file_path.exists():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            logger.error("storage_delete_failed", path=str(file_path), error=str(e))
            return False
        return True

    async def health_check(self) -> bool:
        return self.base_path.is_dir()
