"""Domain enumerations."""

from enum import StrEnum


class SegmentStatus(StrEnum):
    """Status of a single video segment."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionStatus(StrEnum):
    """Status of a multi-segment generation session."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobState(StrEnum):
    """Normalized state of an external generation job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
