"""In-memory storage provider for testing."""

from battle_engine.adapters.storage.base import StorageProvider, StoredObject, compute_checksum


class StubStorageProvider(StorageProvider):
    """Keeps uploaded objects in a dict keyed by storage key."""

    def __init__(self, base_url: str = "https://storage.stub.local") -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}

    @property
    def name(self) -> str:
        return "stub"

    async def upload(self, data: bytes, key: str, content_type: str) -> StoredObject:
        self.objects[key] = data
        return StoredObject(
            key=key,
            url=f"{self.base_url}/{key}",
            size_bytes=len(data),
            content_type=content_type,
            checksum=compute_checksum(data),
        )

    async def delete(self, key: str) -> bool:
        return self.objects.pop(key, None) is not None
