"""Provider selection from settings."""

from battle_engine.adapters.image_gen import (
    FalImageEditProvider,
    ImageEditProvider,
    StubImageEditProvider,
)
from battle_engine.adapters.storage import (
    FalStorageProvider,
    LocalStorageProvider,
    StorageProvider,
    StubStorageProvider,
)
from battle_engine.adapters.video_gen import (
    FalVideoClient,
    GenerationClient,
    StubGenerationClient,
)
from battle_engine.config import settings
from battle_engine.services.battle import BattlePreparationService
from battle_engine.services.media import MediaPostProcessor
from battle_engine.services.orchestrator import SegmentOrchestrator
from battle_engine.services.session_store import SessionStore, get_session_store


def get_generation_client() -> GenerationClient:
    """Get the configured video generation client."""
    provider = settings.video_gen_provider.lower()

    if provider == "fal":
        return FalVideoClient()
    else:
        return StubGenerationClient()


def get_image_edit_provider() -> ImageEditProvider:
    """Get the configured image edit provider."""
    provider = settings.image_gen_provider.lower()

    if provider == "fal":
        return FalImageEditProvider()
    else:
        return StubImageEditProvider()


def get_storage_provider() -> StorageProvider:
    """Get the configured object storage provider."""
    provider = settings.storage_provider.lower()

    if provider == "fal":
        return FalStorageProvider()
    elif provider == "stub":
        return StubStorageProvider()
    else:
        return LocalStorageProvider()


def build_orchestrator(
    store: SessionStore | None = None,
    storage: StorageProvider | None = None,
) -> SegmentOrchestrator:
    """Wire a segment orchestrator from the configured providers."""
    return SegmentOrchestrator(
        store=store or get_session_store(),
        generation_client=get_generation_client(),
        media=MediaPostProcessor(),
        storage=storage or get_storage_provider(),
    )


def build_battle_service(storage: StorageProvider | None = None) -> BattlePreparationService:
    return BattlePreparationService(
        image_provider=get_image_edit_provider(),
        storage=storage or get_storage_provider(),
        download_timeout=settings.media_download_timeout,
    )
