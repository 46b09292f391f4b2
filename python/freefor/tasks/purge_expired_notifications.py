"""Expired notification purge task.

Celery beat job, hourly: deletes notifications whose expires_at has passed.
Push subscriptions and unexpired notifications are untouched.
"""

from freefor.celery import celery_app
from freefor.db.session import get_session_factory, session_scope
from freefor.logging import clear_task_context, configure_task_logging, get_logger
from freefor.services import notifications

logger = get_logger(__name__)


def run_purge() -> int:
    """Purge with a fresh session. Returns the number of rows deleted."""
    with session_scope(get_session_factory()) as db:
        return notifications.purge_expired(db)


@celery_app.task(bind=True, max_retries=0, name="purge_expired_notifications")
def purge_expired_notifications(self, request_id: str | None = None) -> dict:
    """Delete expired notifications.

    Args:
        request_id: Optional request ID for log correlation.

    Returns:
        Dict with the number of purged rows.
    """
    configure_task_logging(
        request_id=request_id,
        task_name="purge_expired_notifications",
        task_id=self.request.id,
    )
    try:
        purged = run_purge()
        logger.info("purge_expired_notifications_completed", purged=purged)
        return {"status": "ok", "purged": purged}
    except Exception as e:
        logger.error("purge_expired_notifications_failed", error=str(e))
        raise
    finally:
        clear_task_context()
