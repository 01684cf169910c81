from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from .core.config import Settings, get_settings
from .core.logging import get_logger
from .orchestration.orchestrator import StorylineOrchestrator
from .services.agent_client import AgentClient
from .services.executions import ExecutionRegistry

logger = get_logger(name=__name__)

_agent_client_singleton: AgentClient | None = None
_orchestrator_singleton: StorylineOrchestrator | None = None
_execution_registry_singleton: ExecutionRegistry | None = None


def get_agent_client_singleton(settings: Settings) -> AgentClient:
    global _agent_client_singleton
    if _agent_client_singleton is None:
        _agent_client_singleton = AgentClient.from_settings(settings)
    return _agent_client_singleton


def get_orchestrator_singleton(settings: Settings) -> StorylineOrchestrator:
    global _orchestrator_singleton
    if _orchestrator_singleton is None:
        _orchestrator_singleton = StorylineOrchestrator.from_settings(
            settings,
            get_agent_client_singleton(settings),
            entry_point="api",
        )
    return _orchestrator_singleton


def get_execution_registry_singleton(settings: Settings) -> ExecutionRegistry:
    global _execution_registry_singleton
    if _execution_registry_singleton is None:
        _execution_registry_singleton = ExecutionRegistry(max_entries=settings.engine.max_tracked_executions)
    return _execution_registry_singleton


async def get_app_settings() -> AsyncIterator[Settings]:
    yield get_settings()


async def shutdown_services() -> None:
    global _agent_client_singleton, _orchestrator_singleton, _execution_registry_singleton
    if _execution_registry_singleton is not None:
        await _execution_registry_singleton.aclose()
    if _agent_client_singleton is not None:
        await _agent_client_singleton.aclose()
    _agent_client_singleton = None
    _orchestrator_singleton = None
    _execution_registry_singleton = None
    logger.info("services_shutdown")


async def get_agent_client(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[AgentClient]:
    yield get_agent_client_singleton(settings)


async def get_orchestrator(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[StorylineOrchestrator]:
    yield get_orchestrator_singleton(settings)


async def get_execution_registry(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[ExecutionRegistry]:
    yield get_execution_registry_singleton(settings)
