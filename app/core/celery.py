"""
Celery configuration for background tasks
"""
from celery import Celery
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_url = settings.redis_url

# Create Celery instance
celery_app = Celery(
    "caja",
    broker=redis_url,
    backend=redis_url,
    include=[
        "app.modules.events.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=60,
    task_soft_time_limit=45,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Los eventos son best-effort: sin resultados persistentes
    task_ignore_result=True,

    # Task routes for different queues
    task_routes={
        "app.modules.events.tasks.*": {"queue": "events"},
    },
)

if __name__ == "__main__":
    celery_app.start()
