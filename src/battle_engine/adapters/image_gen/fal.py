"""fal.ai image edit provider (nano-banana)."""

import os
from typing import Any

import fal_client

from battle_engine.adapters.image_gen.base import (
    ImageEditProvider,
    ImageEditRequest,
    ImageEditResult,
)
from battle_engine.config import settings
from battle_engine.logging import get_logger
from battle_engine.services.retry import RetryOptions, with_retry

logger = get_logger(__name__)


class FalImageEditProvider(ImageEditProvider):
    """Image edits via fal.ai.

    Uses fal_client.subscribe_async(), which queues the request and waits for
    the result; edits finish in seconds, unlike video segments.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        retry_options: RetryOptions | None = None,
    ) -> None:
        self.api_key = api_key or settings.fal_key
        if self.api_key:
            os.environ["FAL_KEY"] = self.api_key

        if not self.api_key and not os.environ.get("FAL_KEY"):
            logger.warning("FAL_KEY not configured for fal image edit provider")

        self.model = model or settings.fal_image_edit_model
        self.retry_options = retry_options or RetryOptions.from_settings()

    @property
    def name(self) -> str:
        return "fal"

    async def edit(self, request: ImageEditRequest) -> ImageEditResult:
        arguments: dict[str, Any] = {
            "prompt": request.prompt,
            "image_urls": request.image_urls,
            "num_images": request.num_images,
            "output_format": request.output_format,
        }
        arguments.update(request.options)

        logger.info(
            "fal_image_edit_started",
            model=self.model,
            prompt_length=len(request.prompt),
            num_sources=len(request.image_urls),
            num_images=request.num_images,
        )

        async def _subscribe() -> Any:
            return await fal_client.subscribe_async(self.model, arguments=arguments, with_logs=True)

        try:
            result = await with_retry(_subscribe, self.retry_options, "fal_image_edit")
        except Exception as e:
            logger.error("fal_image_edit_error", model=self.model, error=str(e))
            return ImageEditResult(success=False, error_message=str(e))

        images = result.get("images") or result.get("data", {}).get("images") or []
        urls = [image["url"] for image in images if isinstance(image, dict) and image.get("url")]
        if not urls:
            logger.error("fal_image_edit_no_images", result_keys=list(result.keys()))
            return ImageEditResult(
                success=False,
                error_message="Image edit completed but no images returned",
            )

        logger.info("fal_image_edit_completed", model=self.model, num_images=len(urls))

        return ImageEditResult(
            success=True,
            image_urls=urls,
            metadata={
                "provider": self.name,
                "model": self.model,
                "seed": result.get("seed"),
            },
        )

    async def health_check(self) -> bool:
        return bool(self.api_key or os.environ.get("FAL_KEY"))
