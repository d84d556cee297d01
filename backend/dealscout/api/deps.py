"""Request-scoped dependencies shared by the routers. Tests override these."""
from typing import Any, Dict, List

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from dealscout.config import Settings, get_settings
from dealscout.models.base import async_session_maker
from dealscout.services.orchestrator import WorkflowOrchestrator, build_orchestrator
from dealscout.services.storage import Storage


def get_session_maker() -> async_sessionmaker:
    return async_session_maker


def get_storage(session_maker: async_sessionmaker = Depends(get_session_maker)) -> Storage:
    return Storage(session_maker)


def get_orchestrator(
    session_maker: async_sessionmaker = Depends(get_session_maker),
    settings: Settings = Depends(get_settings),
) -> WorkflowOrchestrator:
    return build_orchestrator(settings, session_maker)


class TaskDispatcher:
    """Hands long-running pipeline work to the Celery worker."""

    def run_discovery(self, config_id: int, trigger_type: str) -> str:
        from dealscout.workers.tasks import run_discovery_workflow

        return run_discovery_workflow.delay(config_id, trigger_type).id

    def research(self, queue_id: int) -> str:
        from dealscout.workers.tasks import research_queue_item

        return research_queue_item.delay(queue_id).id

    def direct_research(self, companies: List[Dict[str, Any]], strategy: str) -> str:
        from dealscout.workers.tasks import run_direct_research

        return run_direct_research.delay(companies, strategy).id


def get_dispatcher() -> TaskDispatcher:
    return TaskDispatcher()
