"""Stub image edit provider for testing."""

import asyncio
from uuid import uuid4

from battle_engine.adapters.image_gen.base import (
    ImageEditProvider,
    ImageEditRequest,
    ImageEditResult,
)
from battle_engine.logging import get_logger

logger = get_logger(__name__)


class StubImageEditProvider(ImageEditProvider):
    """Returns placeholder image URLs without making API calls."""

    def __init__(self, latency_ms: int = 0, failing_prompts: set[str] | None = None) -> None:
        """Initialize the stub provider.

        Args:
            latency_ms: Simulated latency in milliseconds
            failing_prompts: Prompts for which the edit reports failure
        """
        self.latency_ms = latency_ms
        self.failing_prompts = failing_prompts or set()
        self.requests: list[ImageEditRequest] = []

    @property
    def name(self) -> str:
        return "stub"

    async def edit(self, request: ImageEditRequest) -> ImageEditResult:
        self.requests.append(request)
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

        if request.prompt in self.failing_prompts:
            return ImageEditResult(success=False, error_message="stub edit failed")

        urls = [
            f"https://placehold.co/1024x1024/1a1a1a/ffffff?text=edit+{uuid4().hex[:8]}"
            for _ in range(request.num_images)
        ]
        logger.info("stub_image_edit", num_images=len(urls))
        return ImageEditResult(success=True, image_urls=urls, metadata={"provider": self.name})
