"""
Celery app for scheduled work.

The only jobs are the weekly and monthly AI feedback batches. Each batch
walks every user and calls Claude once per eligible user, so tasks are
long-running: one task per worker process at a time, acknowledged only
after it finishes so a crashed worker's batch is redelivered. A redelivered
batch is harmless because existing feedback periods are skipped.
"""
from celery import Celery
from core.config import settings
from celerybeat_schedule import beat_schedule

celery_app = Celery(
    "shonin",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=7 * 24 * 3600,
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_time_limit=2 * 60 * 60,
    task_soft_time_limit=110 * 60,
    broker_connection_retry_on_startup=True,
    beat_schedule=beat_schedule,
)

from . import feedback_tasks  # noqa: E402

__all__ = ["celery_app"]
