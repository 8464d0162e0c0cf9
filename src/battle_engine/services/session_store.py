"""Durable storage for multi-segment video sessions.

All mutations are whole-record read-modify-write against the backend, keyed
by session id, with last-writer-wins semantics. Every write bumps the
session's ``version`` and ``updated_at``.
"""

import copy
import json
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import fields
from pathlib import Path
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from battle_engine.config import settings
from battle_engine.db.models import Base, VideoSessionModel
from battle_engine.db.session import get_engine
from battle_engine.domain.enums import SegmentStatus, SessionStatus
from battle_engine.domain.models import VideoSegment, VideoSession, now_ms
from battle_engine.logging import get_logger
from battle_engine.presets.battle_script import BATTLE_PROMPTS

logger = get_logger(__name__)

# Fields that are fixed at creation time or maintained by the store itself
_PROTECTED_SESSION_FIELDS = frozenset({"id", "segments", "created_at", "updated_at", "version"})
_PROTECTED_SEGMENT_FIELDS = frozenset({"index", "prompt"})
_SESSION_FIELDS = frozenset(f.name for f in fields(VideoSession))
_SEGMENT_FIELDS = frozenset(f.name for f in fields(VideoSegment))


class SessionStore(ABC):
    """Abstract session store.

    Implementations only provide raw load/save/delete/scan; the update rules
    (protected fields, no regression of completed segments) live here.

    Implementations:
    - InMemorySessionStore: Process-local dict, for tests and development
    - FileSessionStore: One JSON file per session
    - SqlSessionStore: SQLAlchemy table with a JSON payload column
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name identifier."""
        ...

    @abstractmethod
    def _load(self, session_id: str) -> VideoSession | None: ...

    @abstractmethod
    def _save(self, session: VideoSession) -> None: ...

    @abstractmethod
    def _remove(self, session_id: str) -> bool: ...

    @abstractmethod
    def _scan(self) -> Iterator[VideoSession]: ...

    def _write(self, session: VideoSession) -> VideoSession:
        session.version += 1
        session.updated_at = now_ms()
        self._save(session)
        return session

    def create(self, seed_image_url: str, prompts: list[str] | None = None) -> VideoSession:
        """Create and persist a new session with one pending segment per prompt."""
        session = VideoSession.create(seed_image_url, list(prompts or BATTLE_PROMPTS))
        self._write(session)
        logger.info(
            "session_created",
            session_id=session.id,
            store=self.name,
            total_segments=session.total_segments,
        )
        return session

    def get(self, session_id: str) -> VideoSession | None:
        session = self._load(session_id)
        if session is None:
            logger.debug("session_not_found", session_id=session_id, store=self.name)
        return session

    def update(self, session_id: str, **updates: Any) -> VideoSession | None:
        """Apply field updates to a session.

        Returns:
            The updated session, or None if it does not exist

        Raises:
            ValueError: On unknown or store-managed fields
        """
        invalid = set(updates) - (_SESSION_FIELDS - _PROTECTED_SESSION_FIELDS)
        if invalid:
            raise ValueError(f"Cannot update session fields: {sorted(invalid)}")

        session = self._load(session_id)
        if session is None:
            logger.error("session_update_missing", session_id=session_id, store=self.name)
            return None

        for key, value in updates.items():
            if key == "status" and value is not None:
                value = SessionStatus(value)
            setattr(session, key, value)

        self._write(session)
        logger.info(
            "session_updated",
            session_id=session_id,
            fields=sorted(updates),
            status=session.status.value,
            current_segment=session.current_segment_index,
        )
        return session

    def update_segment(self, session_id: str, index: int, **updates: Any) -> VideoSession | None:
        """Apply field updates to one segment of a session.

        A completed segment never changes status again; such an update is
        ignored with a warning.

        Returns:
            The updated session, or None if the session or segment does not exist

        Raises:
            ValueError: On unknown or immutable segment fields
        """
        invalid = set(updates) - (_SEGMENT_FIELDS - _PROTECTED_SEGMENT_FIELDS)
        if invalid:
            raise ValueError(f"Cannot update segment fields: {sorted(invalid)}")

        session = self._load(session_id)
        if session is None or not 0 <= index < len(session.segments):
            logger.error(
                "segment_update_missing",
                session_id=session_id,
                index=index,
                store=self.name,
            )
            return None

        segment = session.segments[index]
        if "status" in updates:
            new_status = SegmentStatus(updates["status"])
            if segment.status == SegmentStatus.COMPLETED and new_status != SegmentStatus.COMPLETED:
                logger.warning(
                    "segment_regression_ignored",
                    session_id=session_id,
                    index=index,
                    attempted_status=new_status.value,
                )
                updates = {k: v for k, v in updates.items() if k != "status"}
            else:
                updates["status"] = new_status

        for key, value in updates.items():
            setattr(segment, key, value)

        self._write(session)
        logger.info(
            "segment_updated",
            session_id=session_id,
            index=index,
            status=segment.status.value,
            request_id=segment.request_id,
        )
        return session

    def delete(self, session_id: str) -> bool:
        removed = self._remove(session_id)
        if removed:
            logger.info("session_deleted", session_id=session_id, store=self.name)
        return removed

    def list_active(self) -> list[VideoSession]:
        """All sessions still processing, oldest first."""
        active = [s for s in self._scan() if s.status == SessionStatus.PROCESSING]
        return sorted(active, key=lambda s: s.created_at)

    def expire(self, max_age_seconds: float) -> int:
        """Remove finished sessions older than ``max_age_seconds``.

        Sessions still processing are never removed.

        Returns:
            Number of sessions removed
        """
        now = now_ms()
        removed = 0
        for session in list(self._scan()):
            if session.status == SessionStatus.PROCESSING:
                continue
            if session.age_seconds(now) > max_age_seconds and self._remove(session.id):
                removed += 1
                logger.info(
                    "session_expired",
                    session_id=session.id,
                    age_minutes=round(session.age_seconds(now) / 60),
                )
        if removed:
            logger.info("sessions_expired_total", removed=removed, store=self.name)
        return removed

    def health_check(self) -> bool:
        """Check that the backend can be read."""
        next(iter(self._scan()), None)
        return True


class InMemorySessionStore(SessionStore):
    """Sessions held in a process-local dict, copied on the way in and out."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def _load(self, session_id: str) -> VideoSession | None:
        with self._lock:
            data = self._sessions.get(session_id)
            return VideoSession.from_dict(copy.deepcopy(data)) if data is not None else None

    def _save(self, session: VideoSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.to_dict()

    def _remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def _scan(self) -> Iterator[VideoSession]:
        with self._lock:
            snapshot = copy.deepcopy(list(self._sessions.values()))
        for data in snapshot:
            yield VideoSession.from_dict(data)


class FileSessionStore(SessionStore):
    """One JSON file per session in a directory.

    Writes go to a temporary file that atomically replaces the old one, so a
    crash mid-write never leaves a truncated session behind.
    """

    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory or settings.sessions_dir
        self.directory.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "file"

    def _path(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    def _read(self, path: Path) -> VideoSession | None:
        try:
            return VideoSession.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("session_file_corrupt", path=str(path), error=str(e))
            return None

    def _load(self, session_id: str) -> VideoSession | None:
        try:
            path = self._path(session_id)
        except ValueError:
            return None
        return self._read(path)

    def _save(self, session: VideoSession) -> None:
        path = self._path(session.id)
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        tmp_path.write_text(json.dumps(session.to_dict(), indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def _remove(self, session_id: str) -> bool:
        try:
            self._path(session_id).unlink()
        except (FileNotFoundError, ValueError):
            return False
        return True

    def _scan(self) -> Iterator[VideoSession]:
        for path in sorted(self.directory.glob("*.json")):
            session = self._read(path)
            if session is not None:
                yield session


class SqlSessionStore(SessionStore):
    """Sessions stored as JSON payloads in the ``video_sessions`` table."""

    def __init__(self, engine: Engine | None = None, create_tables: bool = True) -> None:
        self.engine = engine or get_engine()
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        if create_tables:
            Base.metadata.create_all(self.engine)

    @property
    def name(self) -> str:
        return "sql"

    def _load(self, session_id: str) -> VideoSession | None:
        with self._session_factory() as db:
            row = db.get(VideoSessionModel, session_id)
            return VideoSession.from_dict(row.payload) if row is not None else None

    def _save(self, session: VideoSession) -> None:
        with self._session_factory() as db:
            row = db.get(VideoSessionModel, session.id)
            if row is None:
                row = VideoSessionModel(id=session.id)
                db.add(row)
            row.created_at_ms = session.created_at
            row.status = session.status.value
            row.version = session.version
            row.payload = session.to_dict()
            db.commit()

    def _remove(self, session_id: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(delete(VideoSessionModel).where(VideoSessionModel.id == session_id))
            db.commit()
            return result.rowcount > 0

    def _scan(self) -> Iterator[VideoSession]:
        with self._session_factory() as db:
            rows = db.scalars(select(VideoSessionModel).order_by(VideoSessionModel.created_at_ms))
            payloads = [row.payload for row in rows]
        for payload in payloads:
            yield VideoSession.from_dict(payload)

    def list_active(self) -> list[VideoSession]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(VideoSessionModel)
                .where(VideoSessionModel.status == SessionStatus.PROCESSING.value)
                .order_by(VideoSessionModel.created_at_ms)
            )
            return [VideoSession.from_dict(row.payload) for row in rows]


def get_session_store(backend: str | None = None) -> SessionStore:
    """Get the configured session store backend."""
    backend = (backend or settings.session_store).lower()

    if backend == "memory":
        return InMemorySessionStore()
    elif backend == "sql":
        return SqlSessionStore()
    else:
        return FileSessionStore()
