from celery import Celery
from celery.signals import setup_logging

from dealscout.config import get_settings
from dealscout.observability import configure_logging

settings = get_settings()

celery_app = Celery(
    "dealscout",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["dealscout.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # a full discovery run researches many companies
    task_soft_time_limit=3540,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_annotations={
        "dealscout.workers.tasks.research_queue_item": {
            "time_limit": 900,
            "soft_time_limit": 840,
        },
    },
    beat_scheduler="dealscout.workers.scheduler:DiscoveryScheduler",
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging(settings.log_level, json_format=settings.log_json)
