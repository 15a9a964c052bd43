from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "ai_mention_tracker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    broker_transport_options={"visibility_timeout": settings.celery_visibility_timeout_seconds},
)

# Celery Beat schedule: sweep jobs abandoned by a crashed runner.
celery_app.conf.beat_schedule = {
    "fail-stale-jobs": {
        "task": "fail_stale_jobs",
        "schedule": crontab(minute="*/5"),
    },
}

# Auto-discover tasks from tasks modules
celery_app.autodiscover_tasks(["app.tasks"])

# Explicit include as fallback for autodiscover (needed for CLI worker startup)
celery_app.conf.include = [
    "app.tasks.processing_tasks",
    "app.tasks.maintenance_tasks",
]
