"""API route modules."""

from battle_engine.api.routes import battle, health, sessions, uploads, video

__all__ = ["battle", "health", "sessions", "uploads", "video"]
