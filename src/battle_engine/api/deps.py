"""FastAPI dependencies.

Services are built once per process from settings; tests replace them with
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from battle_engine.adapters.storage.base import StorageProvider
from battle_engine.services.battle import BattlePreparationService
from battle_engine.services.orchestrator import SegmentOrchestrator
from battle_engine.services.providers import (
    build_battle_service,
    build_orchestrator,
    get_storage_provider,
)
from battle_engine.services.session_store import SessionStore, get_session_store


@lru_cache
def get_store() -> SessionStore:
    """Get the process-wide session store."""
    return get_session_store()


@lru_cache
def get_storage() -> StorageProvider:
    """Get the process-wide object storage provider."""
    return get_storage_provider()


@lru_cache
def get_orchestrator() -> SegmentOrchestrator:
    """Get the segment orchestrator instance."""
    return build_orchestrator(store=get_store(), storage=get_storage())


@lru_cache
def get_battle_service() -> BattlePreparationService:
    """Get the battle preparation service instance."""
    return build_battle_service(storage=get_storage())


StoreDep = Annotated[SessionStore, Depends(get_store)]
StorageDep = Annotated[StorageProvider, Depends(get_storage)]
OrchestratorDep = Annotated[SegmentOrchestrator, Depends(get_orchestrator)]
BattleServiceDep = Annotated[BattlePreparationService, Depends(get_battle_service)]
