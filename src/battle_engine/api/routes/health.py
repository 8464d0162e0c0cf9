"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from battle_engine.api.deps import OrchestratorDep
from battle_engine.config import settings
from battle_engine.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, bool] | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    session_store: bool
    ffmpeg: bool
    components: dict[str, bool] | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Basic health check endpoint that verifies the API is running.",
)
async def health_check() -> HealthResponse:
    """Basic health check - is the API up?

    Reports which providers are configured with a real backend.
    """
    from battle_engine import __version__

    components = {
        "video_gen": settings.video_gen_provider,
        "image_gen": settings.image_gen_provider,
        "storage": settings.storage_provider,
    }

    return HealthResponse(
        status="healthy",
        version=__version__,
        components={k: v != "stub" for k, v in components.items()},
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Verifies the session store, ffmpeg and the configured providers.",
)
async def readiness_check(orchestrator: OrchestratorDep) -> ReadinessResponse:
    """Comprehensive readiness check including dependencies."""
    store_ok = False
    try:
        store_ok = orchestrator.store.health_check()
    except Exception as e:
        logger.error("session_store_health_check_failed", error=str(e))

    ffmpeg_ok = await orchestrator.media.health_check()

    components = {
        "video_gen": await orchestrator.client.health_check(),
        "storage": await orchestrator.storage.health_check(),
    }

    ready = store_ok and ffmpeg_ok and all(components.values())

    return ReadinessResponse(
        ready=ready,
        session_store=store_ok,
        ffmpeg=ffmpeg_ok,
        components=components,
    )


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Simple liveness probe for Kubernetes.",
)
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe - is the process alive?"""
    return {"status": "alive"}
