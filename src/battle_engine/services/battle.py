"""Battle preparation: character stances, versus screen and arena images.

The four image edits for a battle run concurrently. Each produced image is
copied into our own storage so its URL outlives the provider's CDN retention.
A single failed edit is logged and reported as a missing image; it never
fails the whole preparation.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from battle_engine.adapters.image_gen.base import ImageEditProvider, ImageEditRequest
from battle_engine.adapters.storage.base import StorageProvider
from battle_engine.domain.errors import ImageEditError, UploadError
from battle_engine.domain.models import now_ms
from battle_engine.logging import get_logger
from battle_engine.presets.battle_script import (
    BATTLE_ARENA_PROMPT,
    PLAYER1_STANCE_PROMPT,
    PLAYER2_STANCE_PROMPT,
    TRANSFORM_PROMPT,
    VERSUS_SCREEN_PROMPT,
)

logger = get_logger(__name__)


@dataclass
class Stance:
    """A player's transformed fighting stance."""

    player: str
    url: str
    type: str = "stance"


@dataclass
class BattlePreparation:
    """Images produced for a battle."""

    stances: list[Stance] = field(default_factory=list)
    versus_screen: str | None = None
    battle_arena: str | None = None
    processing_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stances": [{"player": s.player, "url": s.url, "type": s.type} for s in self.stances],
            "versus_screen": self.versus_screen,
            "battle_arena": self.battle_arena,
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass
class TransformResult:
    image_urls: list[str]
    prompt: str


class BattlePreparationService:
    """Produces the still images for a battle from two player photos."""

    def __init__(
        self,
        image_provider: ImageEditProvider,
        storage: StorageProvider,
        download_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.image_provider = image_provider
        self.storage = storage
        self.download_timeout = download_timeout
        self.transport = transport

    async def _copy_to_storage(self, client: httpx.AsyncClient, url: str, key: str) -> str:
        """Download an image from the provider and store it under ``key``."""
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UploadError(f"Could not download {url}: {e}") from e

        content_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
        stored = await self.storage.upload(response.content, key, content_type)
        return stored.url

    async def _edit_and_store(
        self,
        client: httpx.AsyncClient,
        label: str,
        prompt: str,
        image_urls: list[str],
        key: str,
    ) -> str | None:
        result = await self.image_provider.edit(
            ImageEditRequest(prompt=prompt, image_urls=image_urls, num_images=1)
        )
        if not result.success or result.first_url is None:
            logger.warning("battle_image_failed", image=label, error=result.error_message)
            return None

        try:
            url = await self._copy_to_storage(client, result.first_url, key)
        except UploadError as e:
            logger.warning("battle_image_save_failed", image=label, error=e.message)
            return None

        logger.info("battle_image_saved", image=label, url=url[:100])
        return url

    async def prepare(self, player1_image: str, player2_image: str) -> BattlePreparation:
        """Generate both stances, the versus screen and the arena concurrently."""
        start = time.monotonic()
        stamp = now_ms()
        both = [player1_image, player2_image]

        logger.info("battle_preparation_started", player1=player1_image, player2=player2_image)

        async with httpx.AsyncClient(
            timeout=self.download_timeout, follow_redirects=True, transport=self.transport
        ) as client:
            results = await asyncio.gather(
                self._edit_and_store(
                    client,
                    "player1_stance",
                    PLAYER1_STANCE_PROMPT,
                    [player1_image],
                    f"battle/player1-battle-stance-{stamp}.jpg",
                ),
                self._edit_and_store(
                    client,
                    "player2_stance",
                    PLAYER2_STANCE_PROMPT,
                    [player2_image],
                    f"battle/player2-battle-stance-{stamp}.jpg",
                ),
                self._edit_and_store(
                    client, "versus_screen", VERSUS_SCREEN_PROMPT, both, f"battle/versus-screen-{stamp}.jpg"
                ),
                self._edit_and_store(
                    client, "battle_arena", BATTLE_ARENA_PROMPT, both, f"battle/battle-arena-{stamp}.jpg"
                ),
                return_exceptions=True,
            )

        urls: list[str | None] = []
        for label, result in zip(
            ("player1_stance", "player2_stance", "versus_screen", "battle_arena"), results
        ):
            if isinstance(result, BaseException):
                logger.error("battle_image_error", image=label, error=str(result))
                urls.append(None)
            else:
                urls.append(result)

        p1_stance, p2_stance, versus, arena = urls
        preparation = BattlePreparation(
            stances=[
                Stance(player=player, url=url)
                for player, url in (("player1", p1_stance), ("player2", p2_stance))
                if url
            ],
            versus_screen=versus,
            battle_arena=arena,
            processing_time_ms=int((time.monotonic() - start) * 1000),
        )

        logger.info(
            "battle_preparation_completed",
            stances=len(preparation.stances),
            versus_screen=bool(versus),
            battle_arena=bool(arena),
            processing_time_ms=preparation.processing_time_ms,
        )
        return preparation

    async def transform(
        self,
        image_url: str,
        prompt: str | None = None,
        output_file_name: str | None = None,
        num_images: int = 3,
    ) -> TransformResult:
        """Reimagine one photo as ``num_images`` character variants.

        Raises:
            ImageEditError: If the edit fails or returns no images
            UploadError: If a produced image cannot be stored
        """
        transform_prompt = prompt or TRANSFORM_PROMPT
        result = await self.image_provider.edit(
            ImageEditRequest(prompt=transform_prompt, image_urls=[image_url], num_images=num_images)
        )
        if not result.success or not result.image_urls:
            raise ImageEditError(result.error_message or "Image transform returned no images")

        base_name = (output_file_name or "transformed").replace("/", "-")
        saved: list[str] = []
        async with httpx.AsyncClient(
            timeout=self.download_timeout, follow_redirects=True, transport=self.transport
        ) as client:
            for i, url in enumerate(result.image_urls):
                key = f"transforms/{base_name}-{i}-{now_ms()}.jpg"
                saved.append(await self._copy_to_storage(client, url, key))

        logger.info("transform_completed", images=len(saved), prompt=transform_prompt[:60])
        return TransformResult(image_urls=saved, prompt=transform_prompt)
