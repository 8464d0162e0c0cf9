"""Media post-processing: last-frame extraction and lossless stitching.

Both operations download their inputs into a per-call scratch directory that
is removed on success and on failure, and shell out to ffmpeg/ffprobe.
Blocking subprocess work runs in a worker thread.
"""

import asyncio
import io
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import httpx
from PIL import Image

from battle_engine.config import settings
from battle_engine.domain.errors import FrameExtractionError, StitchError
from battle_engine.logging import get_logger

logger = get_logger(__name__)


class MediaPostProcessor:
    """Frame extraction and concatenation for generated segment videos."""

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        ffprobe_path: str | None = None,
        scratch_dir: Path | None = None,
        timeout: int | None = None,
        seek_offset: float | None = None,
        download_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the post-processor.

        Args:
            ffmpeg_path: FFmpeg binary (defaults to settings, then PATH)
            ffprobe_path: ffprobe binary (defaults to settings, then PATH)
            scratch_dir: Parent directory for per-call scratch space
            timeout: Timeout in seconds for each ffmpeg/ffprobe invocation
            seek_offset: Seconds before the end at which the last frame is taken
            download_timeout: Timeout in seconds for each video download
            transport: Optional httpx transport (used by tests)
        """
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path or "ffmpeg"
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path or "ffprobe"
        self.scratch_dir = scratch_dir or settings.scratch_dir
        self.timeout = timeout or settings.ffmpeg_timeout
        self.seek_offset = settings.frame_seek_offset if seek_offset is None else seek_offset
        self.download_timeout = download_timeout or settings.media_download_timeout
        self.transport = transport

        if self.scratch_dir is not None:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _scratch(self, prefix: str) -> Iterator[Path]:
        with tempfile.TemporaryDirectory(prefix=prefix, dir=self.scratch_dir) as tmp:
            yield Path(tmp)

    async def _download(self, client: httpx.AsyncClient, url: str, dest: Path) -> int:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            size = 0
            with dest.open("wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
                    size += len(chunk)
        return size

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.download_timeout,
            follow_redirects=True,
            transport=self.transport,
        )

    # -------------------------------------------------------------------------
    # Last frame
    # -------------------------------------------------------------------------

    async def extract_last_frame(self, video_url: str) -> bytes:
        """Download a video and return its last frame as JPEG bytes.

        Raises:
            FrameExtractionError: If the video is unreachable, unreadable, has
                zero duration, or no frame could be decoded
        """
        with self._scratch("frame-") as tmp:
            video_path = tmp / "video.mp4"
            try:
                async with self._client() as client:
                    size = await self._download(client, video_url, video_path)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.error("frame_download_failed", video_url=video_url[:100], error=str(e))
                raise FrameExtractionError(f"Could not download {video_url}: {e}") from e

            if size == 0:
                raise FrameExtractionError(f"Downloaded video is empty: {video_url}")

            frame_path = tmp / "frame.jpg"
            frame_bytes = await asyncio.to_thread(self._extract_frame, video_path, frame_path)

        width, height = self._validate_image(frame_bytes)
        logger.info(
            "frame_extraction_success",
            video_url=video_url[:100],
            frame_size=len(frame_bytes),
            width=width,
            height=height,
        )
        return frame_bytes

    def probe_duration(self, video_path: Path) -> float:
        """Read a video's duration in seconds with ffprobe."""
        probe_cmd = [
            self.ffprobe_path,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(video_path),
        ]
        result = subprocess.run(
            probe_cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=self.timeout,
        )
        return float(result.stdout.strip())

    def _extract_frame(self, video_path: Path, frame_path: Path) -> bytes:
        try:
            return self._extract_frame_ffmpeg(video_path, frame_path)
        except FileNotFoundError as e:
            logger.debug("ffmpeg_not_available_trying_moviepy", error=str(e))
            return self._extract_frame_moviepy(video_path, frame_path)

    def _extract_frame_ffmpeg(self, video_path: Path, frame_path: Path) -> bytes:
        try:
            duration = self.probe_duration(video_path)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, ValueError) as e:
            raise FrameExtractionError(f"Could not read video duration: {e}") from e

        if duration <= 0:
            raise FrameExtractionError("Video has zero duration")

        seek_time = max(0.0, duration - self.seek_offset)
        logger.debug("frame_extraction_seek", duration=duration, seek_time=seek_time)

        extract_cmd = [
            self.ffmpeg_path,
            "-y",
            "-ss",
            f"{seek_time:.3f}",
            "-i",
            str(video_path),
            "-frames:v",
            "1",
            "-q:v",
            "2",
            str(frame_path),
        ]
        try:
            subprocess.run(extract_cmd, capture_output=True, check=True, timeout=self.timeout)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise FrameExtractionError(f"ffmpeg frame extraction failed: {e}") from e

        if not frame_path.exists() or frame_path.stat().st_size == 0:
            raise FrameExtractionError("ffmpeg produced no frame")
        return frame_path.read_bytes()

    def _extract_frame_moviepy(self, video_path: Path, frame_path: Path) -> bytes:
        try:
            from moviepy import VideoFileClip
        except ImportError as e:
            raise FrameExtractionError("Neither ffmpeg nor MoviePy is available") from e

        try:
            clip = VideoFileClip(str(video_path))
        except Exception as e:
            raise FrameExtractionError(f"MoviePy could not open video: {e}") from e

        try:
            if not clip.duration:
                raise FrameExtractionError("Video has zero duration")
            clip.save_frame(str(frame_path), t=max(0.0, clip.duration - self.seek_offset))
        finally:
            clip.close()

        return frame_path.read_bytes()

    @staticmethod
    def _validate_image(data: bytes) -> tuple[int, int]:
        try:
            with Image.open(io.BytesIO(data)) as image:
                size = image.size
                image.verify()
        except Exception as e:
            raise FrameExtractionError(f"Extracted frame is not a valid image: {e}") from e
        return size

    # -------------------------------------------------------------------------
    # Stitching
    # -------------------------------------------------------------------------

    async def stitch_videos(self, video_urls: list[str]) -> bytes:
        """Concatenate videos, in the given order, without re-encoding.

        Raises:
            StitchError: If there is nothing to stitch, any download fails, or
                ffmpeg rejects the concatenation
        """
        if not video_urls:
            raise StitchError("No videos to stitch")

        with self._scratch("stitch-") as tmp:
            segment_paths: list[Path] = []
            async with self._client() as client:
                for i, url in enumerate(video_urls):
                    segment_path = tmp / f"segment_{i:03d}.mp4"
                    try:
                        await self._download(client, url, segment_path)
                    except (httpx.HTTPError, httpx.InvalidURL) as e:
                        logger.error("stitch_download_failed", index=i, url=url[:100], error=str(e))
                        raise StitchError(f"Could not download segment {i}: {e}") from e
                    segment_paths.append(segment_path)

            output_path = tmp / "final.mp4"
            await asyncio.to_thread(self._concat, segment_paths, tmp / "concat.txt", output_path)
            final_bytes = output_path.read_bytes()

        logger.info("stitch_success", segments=len(video_urls), size=len(final_bytes))
        return final_bytes

    def _concat(self, segment_paths: list[Path], list_path: Path, output_path: Path) -> None:
        lines = []
        for path in segment_paths:
            escaped = str(path.resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        list_path.write_text("\n".join(lines) + "\n")

        concat_cmd = [
            self.ffmpeg_path,
            "-y",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(list_path),
            "-c",
            "copy",
            str(output_path),
        ]
        try:
            subprocess.run(concat_cmd, capture_output=True, check=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise StitchError(f"ffmpeg not found: {e}") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace")[-500:]
            raise StitchError(f"ffmpeg concat failed: {stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise StitchError(f"ffmpeg concat timed out after {self.timeout}s") from e

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise StitchError("ffmpeg produced an empty output")

    async def health_check(self) -> bool:
        """Check that the ffmpeg binary can be executed."""

        def _check() -> bool:
            try:
                subprocess.run(
                    [self.ffmpeg_path, "-version"], capture_output=True, check=True, timeout=10
                )
            except (OSError, subprocess.SubprocessError):
                return False
            return True

        return await asyncio.to_thread(_check)
