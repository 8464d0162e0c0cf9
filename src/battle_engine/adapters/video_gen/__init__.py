"""Video generation adapters."""

from battle_engine.adapters.video_gen.base import (
    GenerationClient,
    GenerationOutput,
    JobStatusReport,
    VideoGenParams,
    normalize_video_output,
)
from battle_engine.adapters.video_gen.fal import FalVideoClient
from battle_engine.adapters.video_gen.stub import StubGenerationClient

__all__ = [
    "GenerationClient",
    "GenerationOutput",
    "JobStatusReport",
    "VideoGenParams",
    "normalize_video_output",
    "FalVideoClient",
    "StubGenerationClient",
]
