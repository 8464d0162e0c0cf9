"""Database engine management."""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from battle_engine.config import settings


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; pool sizing only applies to server databases."""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


@lru_cache
def get_engine() -> Engine:
    """Get the cached engine for the configured database."""
    return create_db_engine(settings.database_url)
