"""Tests for the fal.ai video generation client."""

from unittest.mock import AsyncMock, MagicMock, patch

import fal_client
import httpx
import pytest

from battle_engine.adapters.video_gen.base import VideoGenParams, normalize_video_output
from battle_engine.adapters.video_gen.fal import FalVideoClient
from battle_engine.domain.enums import JobState
from battle_engine.domain.errors import PollError, ResultNotReadyError, SubmissionError

MODEL = "fal-ai/veo3/fast/image-to-video"
VIDEO = "https://v3.fal.media/files/example/segment.mp4"


class HTTPStatusFailure(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


@pytest.fixture
def client(fast_retry) -> FalVideoClient:
    return FalVideoClient(api_key="test-key", model=MODEL, retry_options=fast_retry)


def _status(cls, **attrs):
    status = MagicMock(spec=cls)
    for key, value in attrs.items():
        setattr(status, key, value)
    return status


class TestNormalizeVideoOutput:
    @pytest.mark.parametrize(
        "result",
        [
            {"video": {"url": VIDEO}},
            {"data": {"video": {"url": VIDEO}}},
            {"output": {"video": {"url": VIDEO}}},
            {"url": VIDEO},
        ],
    )
    def test_video_shapes(self, result) -> None:
        output = normalize_video_output(result)

        assert output is not None
        assert output.video_url == VIDEO

    def test_audio_url(self) -> None:
        output = normalize_video_output(
            {"video": {"url": VIDEO}, "audio": {"url": "https://cdn/audio.wav"}}
        )

        assert output.audio_url == "https://cdn/audio.wav"

    def test_missing_video(self) -> None:
        assert normalize_video_output({"images": []}) is None
        assert normalize_video_output(None) is None


class TestSubmit:
    def test_name(self, client) -> None:
        assert client.name == "fal"

    @pytest.mark.asyncio
    async def test_submit_success(self, client) -> None:
        handle = MagicMock(request_id="req-123")

        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.return_value = handle
            request_id = await client.submit("Opening clash", "https://cdn/arena.jpg", VideoGenParams())

        assert request_id == "req-123"
        mock_submit.assert_awaited_once_with(
            MODEL,
            arguments={
                "prompt": "Opening clash",
                "image_url": "https://cdn/arena.jpg",
                "duration": "8s",
                "generate_audio": True,
                "resolution": "720p",
            },
        )

    @pytest.mark.asyncio
    async def test_bad_request_is_terminal(self, client, sleeps) -> None:
        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.side_effect = HTTPStatusFailure(400)
            with pytest.raises(SubmissionError) as exc_info:
                await client.submit("p", "https://cdn/arena.jpg", VideoGenParams())

        assert exc_info.value.status_code == 400
        assert exc_info.value.recoverable is False
        assert mock_submit.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_server_error_retried(self, client) -> None:
        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.side_effect = [HTTPStatusFailure(503), MagicMock(request_id="req-9")]
            request_id = await client.submit("p", "https://cdn/arena.jpg", VideoGenParams())

        assert request_id == "req-9"
        assert mock_submit.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_rate_limit_is_recoverable(self, client) -> None:
        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.side_effect = HTTPStatusFailure(429)
            with pytest.raises(SubmissionError) as exc_info:
                await client.submit("p", "https://cdn/arena.jpg", VideoGenParams())

        assert exc_info.value.recoverable is True
        assert mock_submit.await_count >= 3

    @pytest.mark.asyncio
    async def test_error_without_status_is_terminal(self, client, sleeps) -> None:
        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.side_effect = ValueError("Unauthorized: invalid credentials")
            with pytest.raises(SubmissionError) as exc_info:
                await client.submit("p", "https://cdn/arena.jpg", VideoGenParams())

        assert exc_info.value.recoverable is False
        assert exc_info.value.status_code is None
        assert mock_submit.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self, client) -> None:
        with patch("fal_client.submit_async", new_callable=AsyncMock) as mock_submit:
            mock_submit.side_effect = httpx.ConnectError("connection refused")
            with pytest.raises(SubmissionError) as exc_info:
                await client.submit("p", "https://cdn/arena.jpg", VideoGenParams())

        assert exc_info.value.recoverable is True
        assert mock_submit.await_count >= 3


class TestPollStatus:
    @pytest.mark.asyncio
    async def test_queued(self, client) -> None:
        status = _status(fal_client.Queued, position=3, logs=None)

        with patch("fal_client.status_async", new_callable=AsyncMock, return_value=status) as mock_status:
            report = await client.poll_status("req-1")

        assert report.state == JobState.QUEUED
        assert report.queue_position == 3
        mock_status.assert_awaited_once_with(MODEL, "req-1", with_logs=True)

    @pytest.mark.asyncio
    async def test_in_progress_with_logs(self, client) -> None:
        status = _status(
            fal_client.InProgress,
            logs=[{"message": "Loading model"}, {"message": "Rendering frames"}],
        )

        with patch("fal_client.status_async", new_callable=AsyncMock, return_value=status):
            report = await client.poll_status("req-1")

        assert report.state == JobState.PROCESSING
        assert report.latest_log == "Rendering frames"

    @pytest.mark.asyncio
    async def test_completed(self, client) -> None:
        status = _status(fal_client.Completed, logs=None, error=None)

        with patch("fal_client.status_async", new_callable=AsyncMock, return_value=status):
            report = await client.poll_status("req-1")

        assert report.state == JobState.COMPLETED
        assert report.output is None

    @pytest.mark.asyncio
    async def test_completed_with_error_is_failed(self, client) -> None:
        status = _status(fal_client.Completed, logs=None, error="content policy violation")

        with patch("fal_client.status_async", new_callable=AsyncMock, return_value=status):
            report = await client.poll_status("req-1")

        assert report.state == JobState.FAILED
        assert report.error == "content policy violation"

    @pytest.mark.asyncio
    async def test_rate_limit_retried_internally(self, client, sleeps) -> None:
        status = _status(fal_client.InProgress, logs=None)

        with patch("fal_client.status_async", new_callable=AsyncMock) as mock_status:
            mock_status.side_effect = [HTTPStatusFailure(429), status]
            report = await client.poll_status("req-1")

        assert report.state == JobState.PROCESSING
        assert mock_status.await_count == 2
        assert len(sleeps) == 1

    @pytest.mark.asyncio
    async def test_exhausted_server_errors_are_transient(self, client) -> None:
        with patch("fal_client.status_async", new_callable=AsyncMock) as mock_status:
            mock_status.side_effect = HTTPStatusFailure(503)
            with pytest.raises(PollError) as exc_info:
                await client.poll_status("req-1")

        assert exc_info.value.transient is True
        assert exc_info.value.status_code == 503
        assert mock_status.await_count == 3

    @pytest.mark.asyncio
    async def test_unauthorized_not_retried(self, client) -> None:
        with patch("fal_client.status_async", new_callable=AsyncMock) as mock_status:
            mock_status.side_effect = HTTPStatusFailure(401)
            with pytest.raises(PollError) as exc_info:
                await client.poll_status("req-1")

        assert exc_info.value.transient is False
        assert mock_status.await_count == 1

    @pytest.mark.asyncio
    async def test_not_found_falls_back_to_result(self, client) -> None:
        with (
            patch("fal_client.status_async", new_callable=AsyncMock) as mock_status,
            patch("fal_client.result_async", new_callable=AsyncMock) as mock_result,
        ):
            mock_status.side_effect = HTTPStatusFailure(404)
            mock_result.return_value = {"video": {"url": VIDEO}}
            report = await client.poll_status("req-1")

        assert report.state == JobState.COMPLETED
        assert report.output.video_url == VIDEO

    @pytest.mark.asyncio
    async def test_not_found_while_result_finalizing(self, client) -> None:
        with (
            patch("fal_client.status_async", new_callable=AsyncMock) as mock_status,
            patch("fal_client.result_async", new_callable=AsyncMock) as mock_result,
        ):
            mock_status.side_effect = HTTPStatusFailure(404)
            mock_result.side_effect = HTTPStatusFailure(422)
            report = await client.poll_status("req-1")

        assert report.state == JobState.PROCESSING
        assert report.output is None
        assert mock_result.await_count == 1

    @pytest.mark.asyncio
    async def test_not_found_anywhere(self, client) -> None:
        with (
            patch("fal_client.status_async", new_callable=AsyncMock) as mock_status,
            patch("fal_client.result_async", new_callable=AsyncMock) as mock_result,
        ):
            mock_status.side_effect = HTTPStatusFailure(404)
            mock_result.side_effect = HTTPStatusFailure(404)
            with pytest.raises(PollError) as exc_info:
                await client.poll_status("req-1")

        assert exc_info.value.status_code == 404
        assert exc_info.value.transient is False


class TestFetchResult:
    @pytest.mark.asyncio
    async def test_result_normalized(self, client) -> None:
        with patch("fal_client.result_async", new_callable=AsyncMock) as mock_result:
            mock_result.return_value = {"data": {"video": {"url": VIDEO}}}
            output = await client.fetch_result("req-1")

        assert output.video_url == VIDEO
        mock_result.assert_awaited_once_with(MODEL, "req-1")

    @pytest.mark.asyncio
    async def test_unprocessable_means_not_ready(self, client) -> None:
        with patch("fal_client.result_async", new_callable=AsyncMock) as mock_result:
            mock_result.side_effect = HTTPStatusFailure(422)
            with pytest.raises(ResultNotReadyError):
                await client.fetch_result("req-1")

        assert mock_result.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_video_url(self, client) -> None:
        with patch("fal_client.result_async", new_callable=AsyncMock) as mock_result:
            mock_result.return_value = {"images": []}
            with pytest.raises(PollError, match="No video URL"):
                await client.fetch_result("req-1")
