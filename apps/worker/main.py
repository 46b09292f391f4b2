"""Celery worker entrypoint.

Run with:
    celery -A apps.worker.main:celery_app worker -Q default,maintenance --loglevel=info
    celery -A apps.worker.main:celery_app beat --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in freefor.tasks package - no autodiscovery.

Queue Configuration:
- maintenance: hourly housekeeping (expired notification purge)
- default: General background tasks
"""

from celery.signals import worker_process_init

from freefor.celery import celery_app
from freefor.logging import configure_logging, get_logger

# Import tasks to register them with Celery
from freefor.tasks import purge_expired_notifications  # noqa: F401


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when worker process starts.

    Worker logs use the same JSON structured format as the FastAPI
    application, with task_name and task_id bound per task.
    """
    configure_logging()
    logger = get_logger(__name__)
    logger.info("celery_worker_started", queues=["default", "maintenance"])


# Command: celery -A apps.worker.main:celery_app worker ...
__all__ = ["celery_app"]
