import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List

from dealscout.config import get_settings
from dealscout.models.base import create_task_engine, session_maker_for
from dealscout.services.orchestrator import (
    ConfigurationNotFoundError,
    QueueItemNotFoundError,
    WorkflowOrchestrator,
    build_orchestrator,
)
from dealscout.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_with_orchestrator(fn: Callable[[WorkflowOrchestrator], Awaitable[Any]]) -> Any:
    """Drive one async pipeline call on a fresh loop with its own engine."""
    settings = get_settings()

    async def _main():
        engine = create_task_engine(settings.database_url)
        try:
            orchestrator = build_orchestrator(settings, session_maker_for(engine))
            return await fn(orchestrator)
        finally:
            await engine.dispose()

    return asyncio.run(_main())


@celery_app.task(name="dealscout.workers.tasks.run_discovery_workflow")
def run_discovery_workflow(config_id: int, trigger_type: str = "scheduled") -> Dict[str, Any]:
    """Discover, score, approve and research for one agent configuration."""
    try:
        workflow_id = _run_with_orchestrator(lambda o: o.run_discovery_workflow(config_id, trigger_type))
    except ConfigurationNotFoundError as exc:
        logger.error("Discovery run skipped: %s", exc)
        return {"error": str(exc)}
    return {"success": True, "workflow_id": workflow_id}


@celery_app.task(name="dealscout.workers.tasks.research_queue_item")
def research_queue_item(queue_id: int) -> Dict[str, Any]:
    """Research a manually approved queue item."""
    try:
        report_id = _run_with_orchestrator(lambda o: o.research_queue_item(queue_id))
    except QueueItemNotFoundError as exc:
        logger.error("Research skipped: %s", exc)
        return {"error": str(exc)}
    return {"success": True, "report_id": report_id}


@celery_app.task(name="dealscout.workers.tasks.run_direct_research")
def run_direct_research(companies: List[Dict[str, str]], strategy: str = "buy-side") -> Dict[str, Any]:
    workflow_id = _run_with_orchestrator(lambda o: o.run_direct_research(companies, strategy))
    return {"success": True, "workflow_id": workflow_id}
