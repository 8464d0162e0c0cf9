"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment before importing app modules
os.environ["SESSION_STORE"] = "memory"
os.environ["VIDEO_GEN_PROVIDER"] = "stub"
os.environ["IMAGE_GEN_PROVIDER"] = "stub"
os.environ["STORAGE_PROVIDER"] = "stub"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"


@pytest.fixture(scope="session")
def test_client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from battle_engine.main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def store():
    """Get an empty in-memory session store."""
    from battle_engine.services.session_store import InMemorySessionStore

    return InMemorySessionStore()


@pytest.fixture
def generation_client():
    """Get a stub generation client whose jobs complete on the first poll."""
    from battle_engine.adapters.video_gen.stub import StubGenerationClient

    return StubGenerationClient(polls_to_complete=1)


@pytest.fixture
def storage():
    """Get an in-memory storage provider."""
    from battle_engine.adapters.storage.stub import StubStorageProvider

    return StubStorageProvider()


@pytest.fixture
def media():
    """Get a media post-processor whose ffmpeg work is mocked out."""
    from battle_engine.services.media import MediaPostProcessor

    processor = MagicMock(spec=MediaPostProcessor)
    processor.extract_last_frame = AsyncMock(return_value=b"\xff\xd8last-frame")
    processor.stitch_videos = AsyncMock(return_value=b"final-video")
    processor.health_check = AsyncMock(return_value=True)
    return processor


@pytest.fixture
def orchestrator(store, generation_client, media, storage):
    """Get a segment orchestrator wired to stubs."""
    from battle_engine.adapters.video_gen.base import VideoGenParams
    from battle_engine.services.orchestrator import SegmentOrchestrator

    return SegmentOrchestrator(
        store=store,
        generation_client=generation_client,
        media=media,
        storage=storage,
        params=VideoGenParams(),
        retry_hint_seconds=5,
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by retry loops under test."""
    return []


@pytest.fixture
def fast_retry(sleeps):
    """Retry options that record delays instead of waiting."""
    from battle_engine.services.retry import RetryOptions

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return RetryOptions(max_retries=3, initial_delay=1.0, max_delay=30.0, sleep=_sleep)


@pytest.fixture
def image_provider():
    """Get a stub image edit provider."""
    from battle_engine.adapters.image_gen.stub import StubImageEditProvider

    return StubImageEditProvider()


@pytest.fixture
def battle_service(image_provider, storage):
    """Get a battle preparation service whose image downloads are mocked."""
    import httpx

    from battle_engine.services.battle import BattlePreparationService

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"\xff\xd8image", headers={"content-type": "image/jpeg"})

    return BattlePreparationService(image_provider, storage, transport=httpx.MockTransport(handler))


@pytest.fixture
def api(test_client, orchestrator, store, storage, battle_service) -> Generator[TestClient, None, None]:
    """Get the test client with services replaced by stubs."""
    from battle_engine.api import deps
    from battle_engine.main import app

    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_battle_service] = lambda: battle_service
    yield test_client
    app.dependency_overrides.clear()
