"""Base interface for asynchronous video generation providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from battle_engine.domain.enums import JobState


@dataclass
class VideoGenParams:
    """Generation parameters sent with every segment."""

    duration: str = "8s"
    generate_audio: bool = True
    resolution: str = "720p"
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationOutput:
    """Canonical shape of a finished generation job."""

    video_url: str
    audio_url: str | None = None


@dataclass
class JobStatusReport:
    """Single status check of an external job.

    A completed job may carry its result inline; when ``output`` is None the
    caller must call ``fetch_result``.
    """

    request_id: str
    state: JobState
    output: GenerationOutput | None = None
    logs: list[str] = field(default_factory=list)
    queue_position: int | None = None
    error: str | None = None

    @property
    def latest_log(self) -> str | None:
        return self.logs[-1] if self.logs else None


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def normalize_video_output(result: Any) -> GenerationOutput | None:
    """Normalize the varying result payloads into one ``GenerationOutput``.

    Accepts ``video.url``, ``data.video.url``, ``output.video.url`` or a bare
    ``url``; audio may sit under ``audio`` or ``data.audio`` as a URL string
    or an object with ``url``.

    Returns:
        The normalized output, or None if no video URL is present
    """
    if not isinstance(result, dict):
        return None

    video_url = (
        _dig(result, "video", "url")
        or _dig(result, "data", "video", "url")
        or _dig(result, "output", "video", "url")
        or result.get("url")
    )
    if not video_url or not isinstance(video_url, str):
        return None

    audio = result.get("audio") or _dig(result, "data", "audio")
    if isinstance(audio, dict):
        audio = audio.get("url")
    audio_url = audio if isinstance(audio, str) else None

    return GenerationOutput(video_url=video_url, audio_url=audio_url)


class GenerationClient(ABC):
    """Abstract base class for queue-based video generation providers.

    Implementations:
    - FalVideoClient: fal.ai queue API (Veo 3 image-to-video)
    - StubGenerationClient: In-memory scripted jobs for development and tests
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def submit(self, prompt: str, seed_image_url: str, params: VideoGenParams) -> str:
        """Create a generation job without waiting for it.

        Returns:
            The provider's request ID

        Raises:
            SubmissionError: If the job could not be created
        """
        ...

    @abstractmethod
    async def poll_status(self, request_id: str) -> JobStatusReport:
        """Check the job status once, without blocking.

        Raises:
            PollError: If the status could not be retrieved
        """
        ...

    @abstractmethod
    async def fetch_result(self, request_id: str) -> GenerationOutput:
        """Fetch the artifact of a completed job.

        Raises:
            ResultNotReadyError: The job reported completion but the artifact
                is not finalized yet; poll again later
            PollError: If the result could not be retrieved
        """
        ...

    async def health_check(self) -> bool:
        """Check if the provider is configured and available."""
        return True
