"""Celery application configuration.

Central configuration for Celery used by both API (for enqueuing)
and worker (for executing tasks).

Usage:
    from freefor.celery import celery_app

    # Run the purge once, outside the beat schedule:
    from freefor.tasks import purge_expired_notifications
    purge_expired_notifications.apply_async(queue="maintenance")
"""

from celery import Celery
from celery.schedules import crontab

from freefor.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery("freefor")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

celery_app.conf.task_routes = {
    "purge_expired_notifications": {"queue": "maintenance"},
}

# Default queue
celery_app.conf.task_default_queue = "default"

# Hourly housekeeping
celery_app.conf.beat_schedule = {
    "purge-expired-notifications": {
        "task": "purge_expired_notifications",
        "schedule": crontab(minute=0),
    },
}

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False
