"""Stub video generation client for development and testing."""

from dataclasses import dataclass, field
from uuid import uuid4

from battle_engine.adapters.video_gen.base import (
    GenerationClient,
    GenerationOutput,
    JobStatusReport,
    VideoGenParams,
)
from battle_engine.domain.enums import JobState
from battle_engine.domain.errors import PollError
from battle_engine.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StubJob:
    """An in-memory job tracked by the stub client."""

    request_id: str
    prompt: str
    seed_image_url: str
    polls: int = 0
    forced_state: JobState | None = None


@dataclass
class StubGenerationClient(GenerationClient):
    """Simulates a queue-based provider without external calls.

    Jobs report ``queued`` on the first poll, ``processing`` until
    ``polls_to_complete`` polls have happened, then ``completed``.

    Errors queued in ``submit_errors``, ``poll_errors`` or ``result_errors``
    are raised (one per call, in order) before normal behaviour resumes.
    """

    polls_to_complete: int = 2
    inline_result: bool = False
    video_url_template: str = "https://stub.local/videos/{request_id}.mp4"
    jobs: dict[str, StubJob] = field(default_factory=dict)
    submitted: list[StubJob] = field(default_factory=list)
    submit_errors: list[Exception] = field(default_factory=list)
    poll_errors: list[Exception] = field(default_factory=list)
    result_errors: list[Exception] = field(default_factory=list)

    @property
    def name(self) -> str:
        return "stub"

    def video_url_for(self, request_id: str) -> str:
        return self.video_url_template.format(request_id=request_id)

    def fail_job(self, request_id: str) -> None:
        self.jobs[request_id].forced_state = JobState.FAILED

    def complete_job(self, request_id: str) -> None:
        self.jobs[request_id].forced_state = JobState.COMPLETED

    async def submit(self, prompt: str, seed_image_url: str, params: VideoGenParams) -> str:
        if self.submit_errors:
            raise self.submit_errors.pop(0)

        job = StubJob(
            request_id=f"stub-{uuid4().hex[:12]}",
            prompt=prompt,
            seed_image_url=seed_image_url,
        )
        self.jobs[job.request_id] = job
        self.submitted.append(job)
        logger.info("stub_job_submitted", request_id=job.request_id, prompt=prompt[:60])
        return job.request_id

    def _state(self, job: StubJob) -> JobState:
        if job.forced_state is not None:
            return job.forced_state
        if job.polls >= self.polls_to_complete:
            return JobState.COMPLETED
        if job.polls <= 1:
            return JobState.QUEUED
        return JobState.PROCESSING

    async def poll_status(self, request_id: str) -> JobStatusReport:
        if self.poll_errors:
            raise self.poll_errors.pop(0)

        job = self.jobs.get(request_id)
        if job is None:
            raise PollError(f"Job {request_id} not found", status_code=404)

        job.polls += 1
        state = self._state(job)
        output = None
        if state == JobState.COMPLETED and self.inline_result:
            output = GenerationOutput(video_url=self.video_url_for(request_id))

        return JobStatusReport(
            request_id=request_id,
            state=state,
            output=output,
            logs=[f"stub poll {job.polls}/{self.polls_to_complete}"],
            error="stub job failed" if state == JobState.FAILED else None,
        )

    async def fetch_result(self, request_id: str) -> GenerationOutput:
        if self.result_errors:
            raise self.result_errors.pop(0)

        if request_id not in self.jobs:
            raise PollError(f"Job {request_id} not found", status_code=404)
        return GenerationOutput(video_url=self.video_url_for(request_id))
