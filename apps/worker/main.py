"""
Celery worker entry point.

    celery -A main worker --beat --loglevel=info

The API directory holds the tasks, settings and models; API_DIR points at it
(defaults to the container path).
"""
import logging
import os
import sys

sys.path.insert(0, os.environ.get("API_DIR", "/api"))

from core.config import settings  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()
logger = logging.getLogger("worker")

if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[CeleryIntegration(monitor_beat_tasks=True)],
        send_default_pii=False,
    )
    logger.info(f"Sentry initialized for worker ({settings.ENVIRONMENT})")

app = celery_app


@celery_app.task(name="worker.health_check")
def health_check():
    """Liveness check: a worker that answers can reach the broker."""
    return {"status": "ok", "scheduled": sorted(celery_app.conf.beat_schedule)}
