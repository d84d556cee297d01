"""Celery beat integration: one cron entry per active agent configuration.

The beat process is a singleton, so it is also where workflows left ``running``
by a previous crash get closed out, once, before any new run is scheduled.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable

from celery.beat import PersistentScheduler
from celery.schedules import crontab

from dealscout.config import get_settings
from dealscout.models.base import create_task_engine, session_maker_for
from dealscout.services.storage import Storage

logger = logging.getLogger(__name__)

DISCOVERY_TASK = "dealscout.workers.tasks.run_discovery_workflow"


def parse_cron_expression(expression: str) -> crontab:
    """Build a crontab from a standard 5-field expression. Raises ValueError."""
    fields = str(expression or "").split()
    if len(fields) != 5:
        raise ValueError(f"Expected 5 cron fields, got {len(fields)}: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        schedule = crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except Exception as exc:
        raise ValueError(f"Invalid cron expression {expression!r}: {exc}") from exc
    return schedule


def build_discovery_schedule(configs: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
    entries: Dict[str, Dict[str, Any]] = {}
    for config in configs:
        if not config.is_active or not config.schedule:
            continue
        try:
            schedule = parse_cron_expression(config.schedule)
        except ValueError as exc:
            logger.warning("Skipping config %s (%s): %s", config.id, config.name, exc)
            continue
        entries[f"agent-config-{config.id}"] = {
            "task": DISCOVERY_TASK,
            "schedule": schedule,
            "args": (config.id, "scheduled"),
        }
    return entries


async def recover_orphaned_workflows(storage: Storage) -> int:
    recovered = await storage.fail_orphaned_workflows()
    if recovered:
        logger.warning("Marked %d orphaned running workflows as failed", recovered)
    return recovered


async def load_startup_state(database_url: str):
    engine = create_task_engine(database_url)
    try:
        storage = Storage(session_maker_for(engine))
        recovered = await recover_orphaned_workflows(storage)
        configs = await storage.list_active_configs()
    finally:
        await engine.dispose()
    return recovered, configs


class DiscoveryScheduler(PersistentScheduler):
    def setup_schedule(self):
        settings = get_settings()
        try:
            _, configs = asyncio.run(load_startup_state(settings.database_url))
        except Exception:
            logger.exception("Could not load agent configurations; starting with the static schedule")
            configs = []

        entries = build_discovery_schedule(configs)
        for name, entry in entries.items():
            logger.info("Scheduled %s (%s)", name, entry["schedule"])
        self.app.conf.beat_schedule = {**(self.app.conf.beat_schedule or {}), **entries}
        super().setup_schedule()
