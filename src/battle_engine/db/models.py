"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class VideoSessionModel(Base):
    """Persisted multi-segment video session.

    The full session lives in ``payload`` (the same camelCase document the
    file store writes); ``status`` and ``created_at_ms`` are copied out so
    active-session listing and expiry can filter in SQL.
    """

    __tablename__ = "video_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), server_default="processing", index=True)
    version: Mapped[int] = mapped_column(Integer, server_default="0")
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
