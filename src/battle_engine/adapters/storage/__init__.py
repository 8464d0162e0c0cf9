"""Object storage adapters."""

from battle_engine.adapters.storage.base import StorageProvider, StoredObject
from battle_engine.adapters.storage.fal import FalStorageProvider
from battle_engine.adapters.storage.local import LocalStorageProvider
from battle_engine.adapters.storage.stub import StubStorageProvider

__all__ = [
    "StorageProvider",
    "StoredObject",
    "FalStorageProvider",
    "LocalStorageProvider",
    "StubStorageProvider",
]
