"""Segment orchestrator - drives a battle video session to completion.

Each call to ``advance`` moves a session at most one transition forward:

    Start(i) -> AwaitingJob(i) -> Polling(i) -> Advancing(i+1) | Stitching | Failed

The orchestrator never schedules anything itself; a poller (browser loop,
CLI ``watch``) calls ``advance`` repeatedly until the session is terminal.
Every piece of state needed to resume lives in the persisted session, so an
abandoned session can be picked up again by any later poll.

Only one ``advance`` per session may run at a time. Within a process this is
enforced with a per-session lock; across processes it is the caller's
contract.
"""

import asyncio
import weakref

from battle_engine.adapters.storage.base import StorageProvider
from battle_engine.adapters.video_gen.base import (
    GenerationClient,
    GenerationOutput,
    VideoGenParams,
)
from battle_engine.config import settings
from battle_engine.domain.enums import JobState, SegmentStatus, SessionStatus
from battle_engine.domain.errors import (
    FrameExtractionError,
    PollError,
    ResultNotReadyError,
    SessionNotFoundError,
    StitchError,
    SubmissionError,
    UploadError,
)
from battle_engine.domain.models import AdvanceResult, StartSessionResult, VideoSession
from battle_engine.logging import get_logger
from battle_engine.presets.battle_script import BATTLE_STAGES, LEGACY_VIDEO_PROMPT
from battle_engine.services.media import MediaPostProcessor
from battle_engine.services.session_store import SessionStore

logger = get_logger(__name__)

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"


def segment_label(index: int, total: int) -> str:
    """Human-readable label such as ``Segment 2/5 (First special move)``."""
    label = f"Segment {index + 1}/{total}"
    if total == len(BATTLE_STAGES):
        label = f"{label} ({BATTLE_STAGES[index].display_name})"
    return label


def default_video_params() -> VideoGenParams:
    return VideoGenParams(
        duration=settings.video_duration,
        generate_audio=settings.video_generate_audio,
        resolution=settings.video_resolution,
    )


class SegmentOrchestrator:
    """State machine for multi-segment video sessions."""

    def __init__(
        self,
        store: SessionStore,
        generation_client: GenerationClient,
        media: MediaPostProcessor,
        storage: StorageProvider,
        params: VideoGenParams | None = None,
        retry_hint_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.client = generation_client
        self.media = media
        self.storage = storage
        self.params = params or default_video_params()
        self.retry_hint_seconds = (
            settings.poll_retry_hint_seconds if retry_hint_seconds is None else retry_hint_seconds
        )
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # =========================================================================
    # Caller-facing operations
    # =========================================================================

    async def start_session(self, seed_image_url: str) -> StartSessionResult:
        """Create a session and submit its first segment.

        A failed first submission is not fatal: the session is created anyway
        and the next poll retries the submission.
        """
        session = self.store.create(seed_image_url)
        result = await self.advance(session.id)
        logger.info(
            "session_started",
            session_id=session.id,
            total_segments=session.total_segments,
            first_step=result.status,
            error=result.error,
        )
        return StartSessionResult(session_id=session.id, total_segments=session.total_segments)

    async def poll_session(self, session_id: str) -> AdvanceResult:
        """Advance a session, falling back to a single-job poll for unknown ids."""
        try:
            return await self.advance(session_id)
        except SessionNotFoundError:
            logger.info("session_not_found_legacy_fallback", request_id=session_id)
            return await self.poll_legacy_job(session_id)

    async def start_legacy_job(self, seed_image_url: str, prompt: str | None = None) -> str:
        """Submit a single video job without session bookkeeping.

        Raises:
            SubmissionError: If the job could not be created
        """
        request_id = await self.client.submit(
            prompt or LEGACY_VIDEO_PROMPT, seed_image_url, self.params
        )
        logger.info("legacy_job_submitted", request_id=request_id)
        return request_id

    async def poll_legacy_job(self, request_id: str) -> AdvanceResult:
        """Check a single job directly and report completion or failure."""
        try:
            report = await self.client.poll_status(request_id)
        except PollError as e:
            return AdvanceResult(
                status=PROCESSING if e.transient else FAILED,
                error=e.message,
                recoverable=e.transient,
                retry_after_seconds=self.retry_hint_seconds if e.transient else None,
            )

        if report.state == JobState.FAILED:
            return AdvanceResult(
                status=FAILED,
                error=report.error or "Video generation failed",
                recoverable=False,
            )

        if report.state == JobState.COMPLETED:
            output = report.output
            if output is None:
                try:
                    output = await self.client.fetch_result(request_id)
                except ResultNotReadyError:
                    return AdvanceResult(
                        status=PROCESSING,
                        progress_message="Finalizing video...",
                        recoverable=True,
                        retry_after_seconds=self.retry_hint_seconds,
                    )
                except PollError as e:
                    return AdvanceResult(
                        status=PROCESSING if e.transient else FAILED,
                        error=e.message,
                        recoverable=e.transient,
                    )
            return AdvanceResult(
                status=COMPLETED,
                completed_segments=1,
                video_url=output.video_url,
            )

        return AdvanceResult(
            status=PROCESSING,
            progress_message=report.latest_log or "Processing...",
        )

    async def cleanup(self, max_age_seconds: float | None = None) -> int:
        """Remove finished sessions older than the expiry window."""
        max_age = settings.session_max_age_seconds if max_age_seconds is None else max_age_seconds
        return self.store.expire(max_age)

    # =========================================================================
    # State machine
    # =========================================================================

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def advance(self, session_id: str) -> AdvanceResult:
        """Move a session one step forward.

        Raises:
            SessionNotFoundError: If no session exists for ``session_id``
        """
        lock = self._lock_for(session_id)
        async with lock:
            session = self.store.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return await self._advance(session)

    async def _advance(self, session: VideoSession) -> AdvanceResult:
        if session.status == SessionStatus.COMPLETED:
            return self._result(session, COMPLETED, video_url=session.final_video_url)

        if session.status == SessionStatus.FAILED:
            recovered = self._recover(session)
            if recovered is None:
                return self._result(session, FAILED, error=session.error, recoverable=False)
            session = recovered

        seg = session.current_segment

        # Resume after an interruption between persisting a segment outcome
        # and moving the pointer
        if seg.status == SegmentStatus.COMPLETED:
            if session.is_last_segment:
                return await self._finalize(session)
            return await self._move_to(session, seg.index + 1)
        if seg.status == SegmentStatus.FAILED:
            return await self._after_segment_failure(session, seg.index, session.error)

        if seg.request_id is None:
            return await self._submit_segment(session, seg.index)

        return await self._poll_segment(session, seg.index, seg.request_id)

    def _recover(self, session: VideoSession) -> VideoSession | None:
        """Reset a failed session to processing if it can make progress.

        Returns:
            The reset session, or None if the failure is permanent
        """
        seg = session.current_segment

        if seg.status == SegmentStatus.COMPLETED:
            if not session.is_last_segment or session.final_video_url or not any(
                s.video_url for s in session.completed_segments
            ):
                return None
            # Every segment has finished; only the stitch failed
            logger.info("session_recovering_stitch", session_id=session.id)
            return self.store.update(session.id, status=SessionStatus.PROCESSING, error=None)

        logger.info(
            "session_recovering",
            session_id=session.id,
            segment=seg.index,
            previous_error=session.error,
        )
        if seg.status == SegmentStatus.FAILED:
            self.store.update_segment(
                session.id, seg.index, status=SegmentStatus.PENDING, request_id=None
            )
        return self.store.update(session.id, status=SessionStatus.PROCESSING, error=None)

    async def _submit_segment(self, session: VideoSession, index: int) -> AdvanceResult:
        """Resolve the seed image for a segment and submit its job."""
        seg = session.segments[index]
        label = segment_label(index, session.total_segments)

        try:
            seed_image_url = await self._resolve_seed(session, index)
        except (FrameExtractionError, UploadError) as e:
            logger.warning(
                "segment_seed_unavailable",
                session_id=session.id,
                segment=index,
                error=e.message,
            )
            return self._result(
                session,
                PROCESSING,
                progress_message=f"{label}: preparing seed image",
                error=e.message,
                recoverable=True,
                retry_after_seconds=self.retry_hint_seconds,
            )

        try:
            request_id = await self.client.submit(seg.prompt, seed_image_url, self.params)
        except SubmissionError as e:
            if e.recoverable:
                logger.warning(
                    "segment_submit_deferred",
                    session_id=session.id,
                    segment=index,
                    error=e.message,
                )
                return self._result(
                    session,
                    PROCESSING,
                    progress_message=f"{label}: waiting to submit",
                    error=e.message,
                    recoverable=True,
                    retry_after_seconds=self.retry_hint_seconds,
                )
            logger.error(
                "segment_submit_failed",
                session_id=session.id,
                segment=index,
                error=e.message,
                status_code=e.status_code,
            )
            return await self._fail_segment(session, index, e.message)

        updated = self.store.update_segment(
            session.id,
            index,
            request_id=request_id,
            status=SegmentStatus.PROCESSING,
            seed_image_url=seed_image_url,
        )
        logger.info(
            "segment_submitted",
            session_id=session.id,
            segment=index,
            request_id=request_id,
        )
        return self._result(
            updated or session,
            PROCESSING,
            progress_message=f"{label}: submitted",
        )

    async def _resolve_seed(self, session: VideoSession, index: int) -> str:
        """Seed image for a segment.

        Segment 0 uses the session's arena image. Later segments use the last
        frame of the nearest earlier completed segment, cached on the segment
        once uploaded.
        """
        seg = session.segments[index]
        if index == 0:
            return session.seed_image_url
        if seg.seed_image_url:
            return seg.seed_image_url

        previous = next(
            (
                s
                for s in reversed(session.segments[:index])
                if s.status == SegmentStatus.COMPLETED and s.video_url
            ),
            None,
        )
        if previous is None:
            logger.warning(
                "segment_seed_fallback",
                session_id=session.id,
                segment=index,
                reason="no earlier completed segment",
            )
            return session.seed_image_url

        frame = await self.media.extract_last_frame(previous.video_url)
        stored = await self.storage.upload(
            frame,
            f"frames/{session.id}/segment_{previous.index}_last.jpg",
            "image/jpeg",
        )
        self.store.update_segment(session.id, index, seed_image_url=stored.url)
        logger.info(
            "segment_seed_extracted",
            session_id=session.id,
            segment=index,
            source_segment=previous.index,
            url=stored.url[:100],
        )
        return stored.url

    async def _poll_segment(
        self, session: VideoSession, index: int, request_id: str
    ) -> AdvanceResult:
        label = segment_label(index, session.total_segments)

        try:
            report = await self.client.poll_status(request_id)
        except PollError as e:
            return await self._handle_poll_error(session, index, e)

        if report.state in (JobState.QUEUED, JobState.PROCESSING):
            if report.latest_log:
                progress = f"{label}: {report.latest_log}"
            elif report.state == JobState.QUEUED and report.queue_position is not None:
                progress = f"{label}: queued (position {report.queue_position})"
            else:
                progress = f"{label}: {report.state.value}"
            return self._result(session, PROCESSING, progress_message=progress)

        if report.state == JobState.FAILED:
            logger.warning(
                "segment_job_failed",
                session_id=session.id,
                segment=index,
                request_id=request_id,
                error=report.error,
            )
            return await self._fail_segment(
                session, index, report.error or "Video generation failed"
            )

        output = report.output
        if output is None:
            try:
                output = await self.client.fetch_result(request_id)
            except ResultNotReadyError:
                return self._result(
                    session,
                    PROCESSING,
                    progress_message=f"{label}: finalizing",
                    recoverable=True,
                    retry_after_seconds=self.retry_hint_seconds,
                )
            except PollError as e:
                return await self._handle_poll_error(session, index, e)

        return await self._complete_segment(session, index, output)

    async def _handle_poll_error(
        self, session: VideoSession, index: int, error: PollError
    ) -> AdvanceResult:
        if error.transient:
            logger.warning(
                "segment_poll_transient_error",
                session_id=session.id,
                segment=index,
                error=error.message,
                status_code=error.status_code,
            )
            return self._result(
                session,
                PROCESSING,
                progress_message="Temporary provider error, retrying",
                error=error.message,
                recoverable=True,
                retry_after_seconds=self.retry_hint_seconds,
            )
        logger.error(
            "segment_poll_failed",
            session_id=session.id,
            segment=index,
            error=error.message,
            status_code=error.status_code,
        )
        return await self._fail_segment(session, index, error.message)

    async def _complete_segment(
        self, session: VideoSession, index: int, output: GenerationOutput
    ) -> AdvanceResult:
        updated = self.store.update_segment(
            session.id, index, video_url=output.video_url, status=SegmentStatus.COMPLETED
        )
        session = updated or session
        logger.info(
            "segment_completed",
            session_id=session.id,
            segment=index,
            video_url=output.video_url[:100],
        )

        if index >= session.total_segments - 1:
            return await self._finalize(session)
        return await self._move_to(session, index + 1)

    async def _move_to(self, session: VideoSession, next_index: int) -> AdvanceResult:
        """Point the session at the next segment and submit it."""
        updated = self.store.update(session.id, current_segment_index=next_index)
        return await self._submit_segment(updated or session, next_index)

    async def _fail_segment(self, session: VideoSession, index: int, error: str) -> AdvanceResult:
        updated = self.store.update_segment(session.id, index, status=SegmentStatus.FAILED)
        return await self._after_segment_failure(updated or session, index, error)

    async def _after_segment_failure(
        self, session: VideoSession, index: int, error: str | None
    ) -> AdvanceResult:
        """Skip past a failed segment, or fail the session if it was the last one."""
        label = segment_label(index, session.total_segments)
        message = f"{label} failed: {error or 'unknown error'}"

        if index < session.total_segments - 1:
            updated = self.store.update(
                session.id, current_segment_index=index + 1, error=message
            )
            logger.warning(
                "segment_skipped",
                session_id=session.id,
                segment=index,
                next_segment=index + 1,
            )
            return self._result(
                updated or session,
                PROCESSING,
                progress_message=f"{message}; continuing with the next segment",
                error=message,
                recoverable=True,
            )

        updated = self.store.update(session.id, status=SessionStatus.FAILED, error=message)
        logger.error("session_failed", session_id=session.id, segment=index, error=message)
        return self._result(updated or session, FAILED, error=message, recoverable=True)

    async def _finalize(self, session: VideoSession) -> AdvanceResult:
        """Stitch every completed segment, in index order, and publish the result."""
        ordered = sorted(session.segments, key=lambda s: s.index)
        video_urls = [
            s.video_url for s in ordered if s.status == SegmentStatus.COMPLETED and s.video_url
        ]
        skipped = [s.index for s in ordered if s.status != SegmentStatus.COMPLETED or not s.video_url]
        if skipped:
            logger.warning("stitch_skipping_segments", session_id=session.id, skipped=skipped)

        try:
            video = await self.media.stitch_videos(video_urls)
            stored = await self.storage.upload(video, f"videos/{session.id}/final.mp4", "video/mp4")
        except (StitchError, UploadError) as e:
            message = f"Stitching failed: {e.message}"
            updated = self.store.update(session.id, status=SessionStatus.FAILED, error=message)
            logger.error("session_stitch_failed", session_id=session.id, error=e.message)
            return self._result(updated or session, FAILED, error=message, recoverable=True)

        updated = self.store.update(
            session.id,
            status=SessionStatus.COMPLETED,
            final_video_url=stored.url,
            error=None,
        )
        logger.info(
            "session_completed",
            session_id=session.id,
            segments_stitched=len(video_urls),
            final_video_url=stored.url[:100],
        )
        return self._result(updated or session, COMPLETED, video_url=stored.url)

    def _result(self, session: VideoSession, status: str, **kwargs: object) -> AdvanceResult:
        return AdvanceResult(
            status=status,
            session_id=session.id,
            current_segment=session.current_segment_index,
            total_segments=session.total_segments,
            completed_segments=len(session.completed_segments),
            **kwargs,  # type: ignore[arg-type]
        )
