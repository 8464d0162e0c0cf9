"""Domain models - pure Python classes independent of storage."""

import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from battle_engine.domain.enums import SegmentStatus, SessionStatus


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_session_id() -> str:
    """Generate a collision-resistant session identifier."""
    return f"battle-{now_ms()}-{uuid4().hex[:12]}"


@dataclass
class VideoSegment:
    """One generated clip in a battle sequence."""

    index: int
    prompt: str
    status: SegmentStatus = SegmentStatus.PENDING
    request_id: str | None = None
    video_url: str | None = None
    seed_image_url: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (SegmentStatus.COMPLETED, SegmentStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted (camelCase) representation."""
        data: dict[str, Any] = {
            "index": self.index,
            "prompt": self.prompt,
            "status": self.status.value,
        }
        if self.request_id is not None:
            data["requestId"] = self.request_id
        if self.video_url is not None:
            data["videoUrl"] = self.video_url
        if self.seed_image_url is not None:
            data["seedImageUrl"] = self.seed_image_url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VideoSegment":
        """Create from the persisted representation."""
        return cls(
            index=int(data["index"]),
            prompt=data["prompt"],
            status=SegmentStatus(data.get("status", SegmentStatus.PENDING)),
            request_id=data.get("requestId"),
            video_url=data.get("videoUrl"),
            seed_image_url=data.get("seedImageUrl"),
        )


@dataclass
class VideoSession:
    """Durable record of a multi-segment battle video generation."""

    id: str
    segments: list[VideoSegment]
    seed_image_url: str
    current_segment_index: int = 0
    status: SessionStatus = SessionStatus.PROCESSING
    final_video_url: str | None = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int | None = None
    version: int = 0
    error: str | None = None

    @classmethod
    def create(cls, seed_image_url: str, prompts: list[str]) -> "VideoSession":
        """Create a fresh session with one pending segment per prompt."""
        if not prompts:
            raise ValueError("A session needs at least one segment prompt")
        created = now_ms()
        return cls(
            id=new_session_id(),
            segments=[VideoSegment(index=i, prompt=p) for i, p in enumerate(prompts)],
            seed_image_url=seed_image_url,
            created_at=created,
            updated_at=created,
        )

    @property
    def total_segments(self) -> int:
        return len(self.segments)

    @property
    def current_segment(self) -> VideoSegment:
        return self.segments[self.current_segment_index]

    @property
    def is_last_segment(self) -> bool:
        return self.current_segment_index >= len(self.segments) - 1

    @property
    def completed_segments(self) -> list[VideoSegment]:
        return [s for s in self.segments if s.status == SegmentStatus.COMPLETED]

    @property
    def failed_segments(self) -> list[VideoSegment]:
        return [s for s in self.segments if s.status == SegmentStatus.FAILED]

    @property
    def all_segments_finished(self) -> bool:
        return all(s.is_finished for s in self.segments)

    def age_seconds(self, now: int | None = None) -> float:
        return ((now if now is not None else now_ms()) - self.created_at) / 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted (camelCase) representation."""
        data: dict[str, Any] = {
            "id": self.id,
            "segments": [s.to_dict() for s in self.segments],
            "currentSegmentIndex": self.current_segment_index,
            "status": self.status.value,
            "seedImageUrl": self.seed_image_url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
        }
        if self.final_video_url is not None:
            data["finalVideoUrl"] = self.final_video_url
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VideoSession":
        """Create from the persisted representation."""
        return cls(
            id=data["id"],
            segments=[VideoSegment.from_dict(s) for s in data["segments"]],
            seed_image_url=data.get("seedImageUrl", ""),
            current_segment_index=int(data.get("currentSegmentIndex", 0)),
            status=SessionStatus(data.get("status", SessionStatus.PROCESSING)),
            final_video_url=data.get("finalVideoUrl"),
            created_at=int(data["createdAt"]),
            updated_at=data.get("updatedAt"),
            version=int(data.get("version", 0)),
            error=data.get("error"),
        )


@dataclass
class AdvanceResult:
    """Outcome of a single orchestrator step, as reported to pollers."""

    status: str  # "processing", "completed" or "failed"
    session_id: str | None = None
    current_segment: int = 0
    total_segments: int = 1
    completed_segments: int = 0
    video_url: str | None = None
    progress_message: str | None = None
    error: str | None = None
    recoverable: bool | None = None
    retry_after_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "session_id": self.session_id,
            "current_segment": self.current_segment,
            "total_segments": self.total_segments,
            "completed_segments": self.completed_segments,
            "video_url": self.video_url,
            "progress_message": self.progress_message,
            "error": self.error,
            "recoverable": self.recoverable,
            "retry_after_seconds": self.retry_after_seconds,
        }


@dataclass
class StartSessionResult:
    """Result of starting a new session."""

    session_id: str
    total_segments: int
