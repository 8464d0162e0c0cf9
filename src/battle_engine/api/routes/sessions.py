"""Multi-segment video session endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from battle_engine.api.deps import OrchestratorDep, StoreDep
from battle_engine.domain.models import AdvanceResult, VideoSession
from battle_engine.logging import get_logger

router = APIRouter(prefix="/sessions", tags=["Sessions"])
logger = get_logger(__name__)


class CreateSessionRequest(BaseModel):
    """Request to start a battle video session."""

    seed_image_url: str = Field(..., min_length=1, description="Battle arena image for segment 1")


class CreateSessionResponse(BaseModel):
    session_id: str
    total_segments: int


class PollResponse(BaseModel):
    """Progress of a session (or a single legacy job)."""

    status: str
    session_id: str | None = None
    current_segment: int
    total_segments: int
    completed_segments: int = 0
    video_url: str | None = None
    progress_message: str | None = None
    error: str | None = None
    recoverable: bool | None = None
    retry_after_seconds: int | None = None

    @classmethod
    def from_result(cls, result: AdvanceResult) -> "PollResponse":
        return cls(**result.to_dict())


class SessionSummary(BaseModel):
    """Short description of a stored session."""

    id: str
    status: str
    current_segment: int
    total_segments: int
    completed_segments: int
    failed_segments: int
    final_video_url: str | None
    error: str | None
    created_at: int
    age_seconds: float

    @classmethod
    def from_session(cls, session: VideoSession) -> "SessionSummary":
        return cls(
            id=session.id,
            status=session.status.value,
            current_segment=session.current_segment_index,
            total_segments=session.total_segments,
            completed_segments=len(session.completed_segments),
            failed_segments=len(session.failed_segments),
            final_video_url=session.final_video_url,
            error=session.error,
            created_at=session.created_at,
            age_seconds=round(session.age_seconds(), 1),
        )


class CleanupResponse(BaseModel):
    removed: int


@router.post(
    "",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start session",
    description="Create a battle video session and submit its first segment.",
)
async def create_session(
    request: CreateSessionRequest, orchestrator: OrchestratorDep
) -> CreateSessionResponse:
    logger.info("create_session", seed_image_url=request.seed_image_url[:100])
    result = await orchestrator.start_session(request.seed_image_url)
    return CreateSessionResponse(
        session_id=result.session_id, total_segments=result.total_segments
    )


@router.get(
    "",
    response_model=list[SessionSummary],
    summary="List active sessions",
    description="Sessions that are still processing, oldest first.",
)
async def list_sessions(store: StoreDep) -> list[SessionSummary]:
    return [SessionSummary.from_session(s) for s in store.list_active()]


@router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Expire old sessions",
    description="Remove finished sessions older than the expiry window.",
)
async def cleanup_sessions(
    orchestrator: OrchestratorDep,
    max_age_seconds: float | None = Query(default=None, ge=0),
) -> CleanupResponse:
    removed = await orchestrator.cleanup(max_age_seconds)
    return CleanupResponse(removed=removed)


@router.get(
    "/{session_id}",
    response_model=PollResponse,
    summary="Poll session",
    description=(
        "Advance the session by one step and report its progress. "
        "Unknown ids are treated as single-job request ids."
    ),
)
async def poll_session(session_id: str, orchestrator: OrchestratorDep) -> PollResponse:
    result = await orchestrator.poll_session(session_id)
    return PollResponse.from_result(result)


@router.get(
    "/{session_id}/details",
    summary="Session details",
    description="The persisted session record, without advancing it.",
)
async def get_session_details(session_id: str, store: StoreDep) -> dict[str, Any]:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    return session.to_dict()


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete session",
)
async def delete_session(session_id: str, store: StoreDep) -> None:
    if not store.delete(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
