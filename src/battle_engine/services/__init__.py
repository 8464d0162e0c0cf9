"""Application services."""

from battle_engine.services.battle import BattlePreparation, BattlePreparationService
from battle_engine.services.media import MediaPostProcessor
from battle_engine.services.orchestrator import SegmentOrchestrator
from battle_engine.services.retry import RetryOptions, with_retry
from battle_engine.services.session_store import (
    FileSessionStore,
    InMemorySessionStore,
    SessionStore,
    SqlSessionStore,
    get_session_store,
)

__all__ = [
    "BattlePreparation",
    "BattlePreparationService",
    "FileSessionStore",
    "InMemorySessionStore",
    "MediaPostProcessor",
    "RetryOptions",
    "SegmentOrchestrator",
    "SessionStore",
    "SqlSessionStore",
    "get_session_store",
    "with_retry",
]
