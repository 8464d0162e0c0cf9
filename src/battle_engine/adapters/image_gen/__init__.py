"""Image edit adapters."""

from battle_engine.adapters.image_gen.base import (
    ImageEditProvider,
    ImageEditRequest,
    ImageEditResult,
)
from battle_engine.adapters.image_gen.fal import FalImageEditProvider
from battle_engine.adapters.image_gen.stub import StubImageEditProvider

__all__ = [
    "ImageEditProvider",
    "ImageEditRequest",
    "ImageEditResult",
    "FalImageEditProvider",
    "StubImageEditProvider",
]
