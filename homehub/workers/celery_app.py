"""Celery application configuration."""

from celery import Celery

from homehub.core.config import settings

celery_app = Celery(
    "homehub",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=[
        "homehub.workers.tasks.notifications",
    ],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task safety limits
    task_time_limit=120,
    task_soft_time_limit=90,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
    task_default_queue="default",
    task_routes={
        "tasks.notifications.*": {"queue": "notifications"},
    },
    beat_schedule={
        "repair-email-settings": {
            "task": "tasks.notifications.repair_email_settings",
            "schedule": 3600.0,  # Hourly
        },
    },
)


class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task class with retry on failure."""

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600  # Max 10 minutes between retries
    retry_jitter = True
    max_retries = 3
