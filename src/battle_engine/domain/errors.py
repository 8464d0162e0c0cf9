"""Domain exceptions.

Every error raised across an adapter or service boundary derives from
``BattleEngineError`` and carries a human-readable message plus a
``recoverable`` flag telling pollers whether to keep polling.
"""


class BattleEngineError(Exception):
    """Base class for all battle engine errors."""

    recoverable: bool = False

    def __init__(self, message: str, *, recoverable: bool | None = None) -> None:
        super().__init__(message)
        self.message = message
        if recoverable is not None:
            self.recoverable = recoverable


class SubmissionError(BattleEngineError):
    """A generation job could not be created."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        recoverable: bool | None = None,
    ) -> None:
        super().__init__(message, recoverable=recoverable)
        self.status_code = status_code


class PollError(BattleEngineError):
    """A job status check or result fetch failed.

    ``transient`` marks failures that are expected to clear up on their own
    (rate limiting, 5xx, network blips) and must not fail a session.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message, recoverable=transient)
        self.status_code = status_code
        self.transient = transient


class ResultNotReadyError(BattleEngineError):
    """The job reported completion but its artifact is not finalized yet (HTTP 422)."""

    recoverable = True


class FrameExtractionError(BattleEngineError):
    """The last frame of a video could not be extracted."""

    recoverable = True


class StitchError(BattleEngineError):
    """Segment videos could not be concatenated."""

    recoverable = True


class UploadError(BattleEngineError):
    """An object could not be written to storage."""

    recoverable = True


class ImageEditError(BattleEngineError):
    """An image edit request failed or returned no images."""


class SessionNotFoundError(BattleEngineError):
    """No session exists for the given identifier."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
