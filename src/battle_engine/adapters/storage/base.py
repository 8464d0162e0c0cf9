"""Base interface for object storage providers."""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class StoredObject:
    """Metadata for an uploaded object."""

    key: str
    url: str
    size_bytes: int
    content_type: str
    checksum: str
    created_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)


def compute_checksum(data: bytes) -> str:
    """Compute SHA256 checksum of data."""
    return hashlib.sha256(data).hexdigest()


class StorageProvider(ABC):
    """Abstract base class for blob storage with public URLs.

    Implementations:
    - LocalStorageProvider: Files on disk, served by the API under /media
    - FalStorageProvider: fal.ai CDN uploads
    - StubStorageProvider: In-memory objects for testing
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def upload(self, data: bytes, key: str, content_type: str) -> StoredObject:
        """Store bytes under ``key`` and return the object's public URL.

        Raises:
            UploadError: If the object could not be stored
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete an object. Returns True if something was removed."""
        ...

    async def health_check(self) -> bool:
        """Check if the storage backend is usable."""
        return True
