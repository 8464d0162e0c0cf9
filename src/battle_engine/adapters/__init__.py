"""Adapters for external services."""

from battle_engine.adapters.image_gen.base import ImageEditProvider
from battle_engine.adapters.storage.base import StorageProvider
from battle_engine.adapters.video_gen.base import GenerationClient

__all__ = [
    "GenerationClient",
    "ImageEditProvider",
    "StorageProvider",
]
