"""
Scheduled AI Feedback Tasks

Weekly and monthly feedback for every eligible user.
Runs via Celery Beat scheduler.
"""

from typing import Dict
from celery import Task
from sqlalchemy.orm import Session
from core.database import get_db_sync
from tasks import celery_app
from services.ai_feedback import generate_for_all_users
import logging

logger = logging.getLogger(__name__)


def _run(feedback_type: str) -> Dict:
    db: Session = get_db_sync()
    try:
        return generate_for_all_users(db, feedback_type)
    finally:
        db.close()


@celery_app.task(name="tasks.generate_weekly_feedback", bind=True)
def generate_weekly_feedback_task(self: Task) -> Dict:
    """Feedback for last Monday..Sunday."""
    logger.info("Starting weekly feedback generation")
    return _run("weekly")


@celery_app.task(name="tasks.generate_monthly_feedback", bind=True)
def generate_monthly_feedback_task(self: Task) -> Dict:
    """Feedback for the previous calendar month."""
    logger.info("Starting monthly feedback generation")
    return _run("monthly")
