"""fal.ai queue-based video generation client.

Submits Veo 3 image-to-video jobs without waiting, so every segment can be
driven forward by separate, short-lived poll calls.
"""

import os
from typing import Any

import fal_client

from battle_engine.adapters.video_gen.base import (
    GenerationClient,
    GenerationOutput,
    JobStatusReport,
    VideoGenParams,
    normalize_video_output,
)
from battle_engine.config import settings
from battle_engine.domain.enums import JobState
from battle_engine.domain.errors import PollError, ResultNotReadyError, SubmissionError
from battle_engine.logging import get_logger
from battle_engine.services.retry import (
    RetryOptions,
    is_network_error,
    is_retryable_error,
    retry_unless_status,
    status_code_of,
    with_retry,
)

logger = get_logger(__name__)


def _submit_should_retry(error: BaseException) -> bool:
    """Retry rate limiting, server and network errors; everything else is final."""
    status = status_code_of(error)
    if status is not None:
        return status == 429 or status >= 500
    return is_network_error(error)


def _extract_logs(status: Any) -> list[str]:
    logs = getattr(status, "logs", None) or []
    messages = []
    for entry in logs:
        message = entry.get("message") if isinstance(entry, dict) else str(entry)
        if message:
            messages.append(message)
    return messages


class FalVideoClient(GenerationClient):
    """Video generation through the fal.ai queue API.

    Retry policies per call:
    - submit: everything except 4xx other than 429
    - status: everything except 401/403/404
    - result: everything except 400/401/403/404/422 (422 means "not ready")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        retry_options: RetryOptions | None = None,
    ) -> None:
        self.api_key = api_key or settings.fal_key
        if self.api_key:
            os.environ["FAL_KEY"] = self.api_key

        if not self.api_key and not os.environ.get("FAL_KEY"):
            logger.warning("FAL_KEY not configured for fal video client")

        self.model = model or settings.fal_video_model
        self.retry_options = retry_options or RetryOptions.from_settings()

    @property
    def name(self) -> str:
        return "fal"

    def _options(self, **overrides: Any) -> RetryOptions:
        values = {
            "max_retries": self.retry_options.max_retries,
            "initial_delay": self.retry_options.initial_delay,
            "max_delay": self.retry_options.max_delay,
            "backoff_multiplier": self.retry_options.backoff_multiplier,
            "sleep": self.retry_options.sleep,
        }
        values.update(overrides)
        return RetryOptions(**values)

    async def submit(self, prompt: str, seed_image_url: str, params: VideoGenParams) -> str:
        """Queue an image-to-video job and return its request ID."""
        arguments: dict[str, Any] = {
            "prompt": prompt,
            "image_url": seed_image_url,
            "duration": params.duration,
            "generate_audio": params.generate_audio,
            "resolution": params.resolution,
        }
        arguments.update(params.options)

        logger.info(
            "fal_submit_started",
            model=self.model,
            prompt_length=len(prompt),
            image_url=seed_image_url[:100],
        )

        async def _submit() -> str:
            handle = await fal_client.submit_async(self.model, arguments=arguments)
            request_id = getattr(handle, "request_id", None)
            if not request_id:
                raise RuntimeError("No request_id returned from fal submission")
            return request_id

        options = self._options(
            max_retries=max(self.retry_options.max_retries, settings.submit_max_attempts),
            initial_delay=settings.submit_initial_delay,
            should_retry=_submit_should_retry,
        )
        try:
            request_id = await with_retry(_submit, options, "fal_submit")
        except Exception as e:
            status = status_code_of(e)
            raise SubmissionError(
                f"Video generation submission failed: {e}",
                status_code=status,
                recoverable=_submit_should_retry(e),
            ) from e

        logger.info("fal_submit_completed", model=self.model, request_id=request_id)
        return request_id

    async def poll_status(self, request_id: str) -> JobStatusReport:
        """Check a job once. A 404 falls back to fetching the result directly."""
        if not request_id:
            raise PollError(f"Invalid request ID: {request_id!r}")

        async def _status() -> Any:
            return await fal_client.status_async(self.model, request_id, with_logs=True)

        try:
            status = await with_retry(
                _status,
                self._options(should_retry=retry_unless_status(401, 403, 404)),
                f"fal_status {request_id}",
            )
        except Exception as e:
            code = status_code_of(e)
            if code == 404:
                # Completed jobs can be cleaned up from the queue
                logger.warning("fal_status_not_found", request_id=request_id)
                try:
                    output = await self.fetch_result(request_id)
                except ResultNotReadyError:
                    return JobStatusReport(
                        request_id=request_id,
                        state=JobState.PROCESSING,
                        logs=["Finalizing video"],
                    )
                except PollError as result_error:
                    raise PollError(
                        f"Job {request_id} not found: {e}", status_code=404
                    ) from result_error
                return JobStatusReport(
                    request_id=request_id, state=JobState.COMPLETED, output=output
                )
            raise PollError(
                f"Status check failed for {request_id}: {e}",
                status_code=code,
                transient=is_retryable_error(e),
            ) from e

        return self._to_report(request_id, status)

    def _to_report(self, request_id: str, status: Any) -> JobStatusReport:
        logs = _extract_logs(status)

        if isinstance(status, fal_client.Queued):
            return JobStatusReport(
                request_id=request_id,
                state=JobState.QUEUED,
                logs=logs,
                queue_position=getattr(status, "position", None),
            )

        if isinstance(status, fal_client.InProgress):
            return JobStatusReport(request_id=request_id, state=JobState.PROCESSING, logs=logs)

        if isinstance(status, fal_client.Completed):
            error = getattr(status, "error", None)
            if error:
                logger.warning("fal_job_failed", request_id=request_id, error=str(error))
                return JobStatusReport(
                    request_id=request_id,
                    state=JobState.FAILED,
                    logs=logs,
                    error=str(error),
                )
            return JobStatusReport(request_id=request_id, state=JobState.COMPLETED, logs=logs)

        logger.warning("fal_unknown_status", request_id=request_id, status=repr(status))
        return JobStatusReport(request_id=request_id, state=JobState.PROCESSING, logs=logs)

    async def fetch_result(self, request_id: str) -> GenerationOutput:
        """Fetch and normalize the finished artifact."""
        if not request_id:
            raise PollError(f"Invalid request ID: {request_id!r}")

        async def _result() -> Any:
            return await fal_client.result_async(self.model, request_id)

        try:
            result = await with_retry(
                _result,
                self._options(should_retry=retry_unless_status(400, 401, 403, 404, 422)),
                f"fal_result {request_id}",
            )
        except Exception as e:
            code = status_code_of(e)
            if code == 422:
                logger.info("fal_result_not_ready", request_id=request_id)
                raise ResultNotReadyError(
                    f"Result for {request_id} is not finalized yet"
                ) from e
            raise PollError(
                f"Result fetch failed for {request_id}: {e}",
                status_code=code,
                transient=is_retryable_error(e),
            ) from e

        output = normalize_video_output(result)
        if output is None:
            keys = list(result.keys()) if isinstance(result, dict) else type(result).__name__
            logger.error("fal_no_video_url", request_id=request_id, result_keys=keys)
            raise PollError(f"No video URL in result for {request_id}")

        logger.info(
            "fal_result_fetched",
            request_id=request_id,
            video_url=output.video_url[:100],
            has_audio=output.audio_url is not None,
        )
        return output

    async def health_check(self) -> bool:
        """Check if FAL_KEY is configured."""
        return bool(self.api_key or os.environ.get("FAL_KEY"))
