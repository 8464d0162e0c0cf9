"""Base interface for image edit providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ImageEditRequest:
    """Request to edit one or more source images with a text prompt."""

    prompt: str
    image_urls: list[str]
    num_images: int = 1
    output_format: str = "jpeg"
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class ImageEditResult:
    """Result from an image edit."""

    success: bool
    image_urls: list[str] = field(default_factory=list)
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def first_url(self) -> str | None:
        return self.image_urls[0] if self.image_urls else None


class ImageEditProvider(ABC):
    """Abstract base class for image edit providers.

    Implementations:
    - StubImageEditProvider: Returns placeholder images for testing
    - FalImageEditProvider: fal.ai nano-banana edit model
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def edit(self, request: ImageEditRequest) -> ImageEditResult:
        """Edit the source images according to the prompt.

        Args:
            request: Image edit request with prompt and source image URLs

        Returns:
            ImageEditResult with URLs of the produced images or error information
        """
        ...

    async def health_check(self) -> bool:
        """Check if the provider is available.

        Returns:
            True if provider is operational
        """
        return True
