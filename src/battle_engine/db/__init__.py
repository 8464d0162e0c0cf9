"""Database layer."""

from battle_engine.db.models import Base, VideoSessionModel
from battle_engine.db.session import create_db_engine, get_engine

__all__ = [
    "Base",
    "VideoSessionModel",
    "create_db_engine",
    "get_engine",
]
