"""Application configuration via environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    api_reload: bool = Field(default=False, description="Enable auto-reload for development")

    # Session storage
    session_store: Literal["memory", "file", "sql"] = Field(
        default="file",
        description="Session store backend (memory, file, sql)",
    )
    sessions_dir: Path = Field(
        default=Path(".sessions"),
        description="Directory for JSON session files (session_store=file)",
    )
    database_url: str = Field(
        default="sqlite:///./battle_engine.db",
        description="SQLAlchemy connection string (session_store=sql)",
    )
    session_max_age_seconds: int = Field(
        default=3600,
        description="Age after which finished sessions are removed by cleanup",
    )

    # Providers
    video_gen_provider: str = Field(
        default="stub",
        description="Video generation provider (fal, stub)",
    )
    image_gen_provider: str = Field(
        default="stub",
        description="Image edit provider for battle preparation (fal, stub)",
    )
    storage_provider: str = Field(
        default="local",
        description="Object storage provider (local, fal, stub)",
    )

    # fal.ai
    fal_key: str | None = Field(default=None, description="fal.ai API key")
    fal_video_model: str = Field(
        default="fal-ai/veo3/fast/image-to-video",
        description="fal.ai image-to-video model used for every segment",
    )
    fal_image_edit_model: str = Field(
        default="fal-ai/nano-banana/edit",
        description="fal.ai image edit model used for stances, versus and arena",
    )
    video_duration: str = Field(default="8s", description="Segment duration passed to the model")
    video_resolution: Literal["720p", "1080p"] = Field(
        default="720p",
        description="Segment resolution",
    )
    video_generate_audio: bool = Field(default=True, description="Generate audio with video")

    # Local object storage
    storage_path: Path = Field(
        default=Path("./storage"),
        description="Base directory for storage_provider=local",
    )
    storage_public_base_url: str = Field(
        default="http://localhost:8000/media",
        description="Public URL prefix under which local storage is served",
    )

    # FFmpeg
    ffmpeg_path: str | None = Field(
        default=None,
        description="Path to FFmpeg binary (uses 'ffmpeg' from PATH if not specified)",
    )
    ffprobe_path: str | None = Field(
        default=None,
        description="Path to ffprobe binary (uses 'ffprobe' from PATH if not specified)",
    )
    ffmpeg_timeout: int = Field(
        default=300,
        description="Timeout in seconds for a single ffmpeg/ffprobe invocation",
    )
    scratch_dir: Path | None = Field(
        default=None,
        description="Parent directory for per-call scratch space (system temp if unset)",
    )
    frame_seek_offset: float = Field(
        default=0.1,
        description="Seconds before the end of a clip at which the last frame is taken",
    )
    media_download_timeout: float = Field(
        default=300.0,
        description="Timeout in seconds for downloading a segment video",
    )

    # Retry defaults
    retry_max_attempts: int = Field(default=3, ge=1, description="Attempts per external call")
    retry_initial_delay: float = Field(default=1.0, description="First backoff delay (seconds)")
    retry_max_delay: float = Field(default=30.0, description="Backoff delay cap (seconds)")
    retry_backoff_multiplier: float = Field(default=2.0, description="Backoff growth factor")
    submit_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts when submitting a generation job",
    )
    submit_initial_delay: float = Field(
        default=2.0,
        description="First backoff delay when submitting a generation job (seconds)",
    )

    # Polling
    poll_retry_hint_seconds: int = Field(
        default=5,
        description="Suggested delay before the next poll after a transient error",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


# Convenience alias
settings = get_settings()
