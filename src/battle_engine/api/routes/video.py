"""Single-job video endpoints kept for older clients.

These submit one video job from the battle arena image and poll it directly,
without a session.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from battle_engine.api.deps import OrchestratorDep
from battle_engine.api.routes.sessions import PollResponse
from battle_engine.logging import get_logger

router = APIRouter(prefix="/video", tags=["Video"])
logger = get_logger(__name__)


class StartVideoRequest(BaseModel):
    battle_arena_url: str = Field(..., min_length=1)
    prompt: str | None = Field(None, max_length=5000)


class StartVideoResponse(BaseModel):
    request_id: str
    status: str = "queued"


@router.post(
    "/start",
    response_model=StartVideoResponse,
    summary="Start single video job",
)
async def start_video(request: StartVideoRequest, orchestrator: OrchestratorDep) -> StartVideoResponse:
    request_id = await orchestrator.start_legacy_job(request.battle_arena_url, request.prompt)
    return StartVideoResponse(request_id=request_id)


@router.get(
    "/{request_id}",
    response_model=PollResponse,
    summary="Poll single video job",
)
async def poll_video(request_id: str, orchestrator: OrchestratorDep) -> PollResponse:
    result = await orchestrator.poll_legacy_job(request_id)
    return PollResponse.from_result(result)
