"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Weekly feedback - every Monday at 9 AM UTC, for the week that just ended
    'generate-weekly-feedback': {
        'task': 'tasks.generate_weekly_feedback',
        'schedule': crontab(hour=9, minute=0, day_of_week=1),
    },
    # Monthly feedback - 1st of the month at 9 AM UTC, for the previous month
    'generate-monthly-feedback': {
        'task': 'tasks.generate_monthly_feedback',
        'schedule': crontab(hour=9, minute=0, day_of_month=1),
    },
}
