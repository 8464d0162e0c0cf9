"""Domain layer - enums, models and errors."""

from battle_engine.domain.enums import JobState, SegmentStatus, SessionStatus
from battle_engine.domain.errors import (
    BattleEngineError,
    FrameExtractionError,
    ImageEditError,
    PollError,
    ResultNotReadyError,
    SessionNotFoundError,
    StitchError,
    SubmissionError,
    UploadError,
)
from battle_engine.domain.models import (
    AdvanceResult,
    StartSessionResult,
    VideoSegment,
    VideoSession,
)

__all__ = [
    # Enums
    "JobState",
    "SegmentStatus",
    "SessionStatus",
    # Models
    "AdvanceResult",
    "StartSessionResult",
    "VideoSegment",
    "VideoSession",
    # Errors
    "BattleEngineError",
    "FrameExtractionError",
    "ImageEditError",
    "PollError",
    "ResultNotReadyError",
    "SessionNotFoundError",
    "StitchError",
    "SubmissionError",
    "UploadError",
]
