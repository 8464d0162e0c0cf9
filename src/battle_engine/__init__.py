"""Battle Engine - multi-segment AI battle video generation."""

__version__ = "0.1.0"
