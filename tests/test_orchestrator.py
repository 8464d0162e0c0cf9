"""Tests for the segment orchestrator state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from battle_engine.adapters.video_gen.fal import FalVideoClient
from battle_engine.adapters.video_gen.stub import StubGenerationClient
from battle_engine.domain.enums import SegmentStatus, SessionStatus
from battle_engine.domain.errors import (
    FrameExtractionError,
    PollError,
    ResultNotReadyError,
    SessionNotFoundError,
    StitchError,
    SubmissionError,
)
from battle_engine.domain.models import AdvanceResult
from battle_engine.presets.battle_script import BATTLE_PROMPTS, LEGACY_VIDEO_PROMPT
from battle_engine.services.orchestrator import SegmentOrchestrator, segment_label

SEED = "https://storage.stub.local/battle/arena.jpg"


class HTTPStatusFailure(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


async def drive(orchestrator: SegmentOrchestrator, session_id: str, max_polls: int = 20) -> AdvanceResult:
    """Poll until the session leaves ``processing``."""
    for _ in range(max_polls):
        result = await orchestrator.advance(session_id)
        if result.status != "processing":
            return result
    raise AssertionError(f"session {session_id} still processing after {max_polls} polls")


def video_url(client: StubGenerationClient, index: int) -> str:
    return client.video_url_for(client.submitted[index].request_id)


class TestSegmentLabel:
    def test_battle_script_label(self) -> None:
        assert segment_label(0, 5) == "Segment 1/5 (Opening clash)"

    def test_custom_length_label(self) -> None:
        assert segment_label(1, 3) == "Segment 2/3"


class TestStartSession:
    @pytest.mark.asyncio
    async def test_creates_session_and_submits_first_segment(
        self, orchestrator, store, generation_client
    ) -> None:
        result = await orchestrator.start_session(SEED)

        assert result.total_segments == 5
        session = store.get(result.session_id)
        assert session.status == SessionStatus.PROCESSING
        assert session.segments[0].status == SegmentStatus.PROCESSING
        assert session.segments[0].request_id == generation_client.submitted[0].request_id
        assert generation_client.submitted[0].seed_image_url == SEED
        assert generation_client.submitted[0].prompt == BATTLE_PROMPTS[0]

    @pytest.mark.asyncio
    async def test_transient_submit_failure_is_not_fatal(
        self, orchestrator, store, generation_client
    ) -> None:
        generation_client.submit_errors.append(
            SubmissionError("service unavailable", status_code=503, recoverable=True)
        )

        result = await orchestrator.start_session(SEED)

        session = store.get(result.session_id)
        assert session.status == SessionStatus.PROCESSING
        assert session.segments[0].request_id is None
        assert session.segments[0].status == SegmentStatus.PENDING

        retry = await orchestrator.advance(result.session_id)

        assert retry.status == "processing"
        assert store.get(result.session_id).segments[0].request_id is not None


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_runs_all_segments_and_stitches_in_order(
        self, orchestrator, store, generation_client, media, storage
    ) -> None:
        started = await orchestrator.start_session(SEED)

        result = await drive(orchestrator, started.session_id)

        assert result.status == "completed"
        assert result.completed_segments == 5
        expected_urls = [video_url(generation_client, i) for i in range(5)]
        media.stitch_videos.assert_awaited_once_with(expected_urls)

        final_key = f"videos/{started.session_id}/final.mp4"
        assert storage.objects[final_key] == b"final-video"
        assert result.video_url == f"https://storage.stub.local/{final_key}"

        session = store.get(started.session_id)
        assert session.status == SessionStatus.COMPLETED
        assert session.final_video_url == result.video_url
        assert all(s.status == SegmentStatus.COMPLETED for s in session.segments)

    @pytest.mark.asyncio
    async def test_each_segment_seeded_with_previous_last_frame(
        self, orchestrator, generation_client, media
    ) -> None:
        started = await orchestrator.start_session(SEED)

        await drive(orchestrator, started.session_id)

        for index in range(1, 5):
            frame_url = (
                f"https://storage.stub.local/frames/{started.session_id}/"
                f"segment_{index - 1}_last.jpg"
            )
            assert generation_client.submitted[index].seed_image_url == frame_url
            assert generation_client.submitted[index].prompt == BATTLE_PROMPTS[index]

        extracted = [call.args[0] for call in media.extract_last_frame.await_args_list]
        assert extracted == [video_url(generation_client, i) for i in range(4)]

    @pytest.mark.asyncio
    async def test_segment_index_never_decreases(self, orchestrator, store) -> None:
        started = await orchestrator.start_session(SEED)
        indexes = [store.get(started.session_id).current_segment_index]

        for _ in range(10):
            result = await orchestrator.advance(started.session_id)
            indexes.append(store.get(started.session_id).current_segment_index)
            if result.status == "completed":
                break

        assert indexes == sorted(indexes)
        assert indexes[-1] == 4

    @pytest.mark.asyncio
    async def test_completed_session_is_idempotent(
        self, orchestrator, store, generation_client, media
    ) -> None:
        started = await orchestrator.start_session(SEED)
        first = await drive(orchestrator, started.session_id)
        version = store.get(started.session_id).version

        again = await orchestrator.advance(started.session_id)

        assert again.status == "completed"
        assert again.video_url == first.video_url
        assert store.get(started.session_id).version == version
        assert len(generation_client.submitted) == 5
        assert media.stitch_videos.await_count == 1

    @pytest.mark.asyncio
    async def test_progress_message_uses_provider_logs(self, store, media, storage) -> None:
        client = StubGenerationClient(polls_to_complete=3)
        orchestrator = SegmentOrchestrator(store, client, media, storage)
        started = await orchestrator.start_session(SEED)

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        assert result.progress_message == "Segment 1/5 (Opening clash): stub poll 1/3"
        assert result.current_segment == 0


class TestSegmentFailures:
    @pytest.mark.asyncio
    async def test_mid_sequence_failure_advances_to_next_segment(
        self, orchestrator, store, generation_client, media
    ) -> None:
        started = await orchestrator.start_session(SEED)
        await orchestrator.advance(started.session_id)
        await orchestrator.advance(started.session_id)
        session = store.get(started.session_id)
        assert session.current_segment_index == 2
        generation_client.fail_job(session.segments[2].request_id)

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        assert result.recoverable is True
        session = store.get(started.session_id)
        assert session.current_segment_index == 3
        assert session.status == SessionStatus.PROCESSING
        assert session.segments[2].status == SegmentStatus.FAILED

        final = await drive(orchestrator, started.session_id)

        assert final.status == "completed"
        assert final.completed_segments == 4
        # Segment 3 is seeded from segment 1, the nearest completed one
        assert generation_client.submitted[3].seed_image_url.endswith("segment_1_last.jpg")
        stitched = media.stitch_videos.await_args.args[0]
        assert stitched == [video_url(generation_client, i) for i in (0, 1, 3, 4)]

    @pytest.mark.asyncio
    async def test_last_segment_failure_fails_session_then_recovers(
        self, orchestrator, store, generation_client
    ) -> None:
        started = await orchestrator.start_session(SEED)
        for _ in range(4):
            await orchestrator.advance(started.session_id)
        session = store.get(started.session_id)
        assert session.current_segment_index == 4
        generation_client.fail_job(session.segments[4].request_id)

        failed = await orchestrator.advance(started.session_id)

        assert failed.status == "failed"
        assert failed.recoverable is True
        assert "Segment 5/5" in failed.error
        assert store.get(started.session_id).status == SessionStatus.FAILED

        retried = await orchestrator.advance(started.session_id)

        assert retried.status == "processing"
        session = store.get(started.session_id)
        assert session.status == SessionStatus.PROCESSING
        assert session.error is None
        assert session.segments[4].request_id == generation_client.submitted[5].request_id

        final = await drive(orchestrator, started.session_id)
        assert final.status == "completed"
        assert final.completed_segments == 5

    @pytest.mark.asyncio
    async def test_terminal_submit_failure_skips_segment(
        self, orchestrator, store, generation_client, media
    ) -> None:
        generation_client.submit_errors.append(
            SubmissionError("invalid image", status_code=400, recoverable=False)
        )

        started = await orchestrator.start_session(SEED)

        session = store.get(started.session_id)
        assert session.segments[0].status == SegmentStatus.FAILED
        assert session.segments[0].request_id is None
        assert session.current_segment_index == 1

        await orchestrator.advance(started.session_id)

        # No earlier segment completed, so the arena image seeds segment 2
        assert generation_client.submitted[0].seed_image_url == SEED
        media.extract_last_frame.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_job_fails_segment(self, orchestrator, store, generation_client) -> None:
        started = await orchestrator.start_session(SEED)
        generation_client.poll_errors.append(PollError("Job not found", status_code=404))

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        session = store.get(started.session_id)
        assert session.segments[0].status == SegmentStatus.FAILED
        assert session.current_segment_index == 1


class TestTransientErrors:
    @pytest.mark.asyncio
    async def test_rate_limited_poll_leaves_session_untouched(
        self, orchestrator, store, generation_client
    ) -> None:
        started = await orchestrator.start_session(SEED)
        before = store.get(started.session_id)
        generation_client.poll_errors.append(
            PollError("Rate limit exceeded", status_code=429, transient=True)
        )

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        assert result.recoverable is True
        assert result.retry_after_seconds == 5
        assert store.get(started.session_id) == before

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        assert store.get(started.session_id).segments[0].status == SegmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_result_not_ready_keeps_polling(
        self, orchestrator, store, generation_client
    ) -> None:
        started = await orchestrator.start_session(SEED)
        generation_client.result_errors.append(ResultNotReadyError("not finalized"))

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        assert result.recoverable is True
        assert store.get(started.session_id).segments[0].status == SegmentStatus.PROCESSING

        await orchestrator.advance(started.session_id)
        assert store.get(started.session_id).segments[0].status == SegmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_lost_status_while_result_finalizing_keeps_polling(
        self, store, media, storage, fast_retry
    ) -> None:
        client = FalVideoClient(api_key="test-key", retry_options=fast_retry)
        orchestrator = SegmentOrchestrator(store, client, media, storage, retry_hint_seconds=5)

        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.return_value = MagicMock(request_id="req-1")
            started = await orchestrator.start_session(SEED)

        with (
            patch("fal_client.status_async", new_callable=AsyncMock) as mock_status,
            patch("fal_client.result_async", new_callable=AsyncMock) as mock_result,
        ):
            mock_status.side_effect = HTTPStatusFailure(404)
            mock_result.side_effect = HTTPStatusFailure(422)
            result = await orchestrator.advance(started.session_id)
            legacy = await orchestrator.poll_legacy_job("req-1")

        assert result.status == "processing"
        session = store.get(started.session_id)
        assert session.status == SessionStatus.PROCESSING
        assert session.segments[0].status == SegmentStatus.PROCESSING
        assert session.segments[0].request_id == "req-1"

        assert legacy.status == "processing"

    @pytest.mark.asyncio
    async def test_frame_extraction_failure_is_retried_on_next_poll(
        self, orchestrator, store, generation_client, media
    ) -> None:
        media.extract_last_frame.side_effect = [FrameExtractionError("zero duration"), b"frame"]
        started = await orchestrator.start_session(SEED)

        result = await orchestrator.advance(started.session_id)

        assert result.status == "processing"
        assert result.recoverable is True
        session = store.get(started.session_id)
        assert session.current_segment_index == 1
        assert session.segments[0].status == SegmentStatus.COMPLETED
        assert session.segments[1].status == SegmentStatus.PENDING
        assert len(generation_client.submitted) == 1

        await orchestrator.advance(started.session_id)

        assert len(generation_client.submitted) == 2
        assert media.extract_last_frame.await_count == 2


class TestStitching:
    @pytest.mark.asyncio
    async def test_stitch_failure_is_retried_without_rerunning_segments(
        self, orchestrator, store, generation_client, media
    ) -> None:
        media.stitch_videos.side_effect = [StitchError("concat failed"), b"final-video"]
        started = await orchestrator.start_session(SEED)

        failed = await drive(orchestrator, started.session_id)

        assert failed.status == "failed"
        assert failed.recoverable is True
        assert "Stitching failed" in failed.error
        assert store.get(started.session_id).status == SessionStatus.FAILED

        completed = await orchestrator.advance(started.session_id)

        assert completed.status == "completed"
        assert len(generation_client.submitted) == 5
        assert media.stitch_videos.await_count == 2


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_polls_submit_each_segment_once(
        self, orchestrator, store, generation_client
    ) -> None:
        session = store.create(SEED)

        await asyncio.gather(*(orchestrator.advance(session.id) for _ in range(4)))

        prompts = [job.prompt for job in generation_client.submitted]
        assert prompts.count(BATTLE_PROMPTS[0]) == 1
        assert prompts == list(BATTLE_PROMPTS[: len(prompts)])


class TestLookupAndLegacy:
    @pytest.mark.asyncio
    async def test_advance_unknown_session(self, orchestrator) -> None:
        with pytest.raises(SessionNotFoundError):
            await orchestrator.advance("battle-missing")

    @pytest.mark.asyncio
    async def test_poll_session_falls_back_to_legacy_job(
        self, orchestrator, generation_client
    ) -> None:
        request_id = await orchestrator.start_legacy_job(SEED)

        result = await orchestrator.poll_session(request_id)

        assert result.status == "completed"
        assert result.session_id is None
        assert result.total_segments == 1
        assert result.video_url == generation_client.video_url_for(request_id)
        assert generation_client.submitted[0].prompt == LEGACY_VIDEO_PROMPT

    @pytest.mark.asyncio
    async def test_legacy_unknown_job_fails(self, orchestrator) -> None:
        result = await orchestrator.poll_legacy_job("stub-unknown")

        assert result.status == "failed"
        assert result.recoverable is False

    @pytest.mark.asyncio
    async def test_legacy_transient_error_keeps_polling(
        self, orchestrator, generation_client
    ) -> None:
        request_id = await orchestrator.start_legacy_job(SEED, prompt="custom")
        generation_client.poll_errors.append(
            PollError("Service unavailable", status_code=503, transient=True)
        )

        result = await orchestrator.poll_legacy_job(request_id)

        assert result.status == "processing"
        assert result.recoverable is True
        assert generation_client.submitted[0].prompt == "custom"

    @pytest.mark.asyncio
    async def test_legacy_submit_failure_raises(self, orchestrator, generation_client) -> None:
        generation_client.submit_errors.append(SubmissionError("bad request", status_code=400))

        with pytest.raises(SubmissionError):
            await orchestrator.start_legacy_job(SEED)


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_expires_finished_sessions(self, orchestrator, store) -> None:
        done = store.create(SEED)
        done = store.update(done.id, status=SessionStatus.COMPLETED)
        done.created_at -= 120_000
        store._save(done)
        active = store.create(SEED)

        removed = await orchestrator.cleanup(max_age_seconds=60)

        assert removed == 1
        assert store.get(done.id) is None
        assert store.get(active.id) is not None
