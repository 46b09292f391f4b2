"""Celery tasks for freefor.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.
"""

from freefor.tasks.purge_expired_notifications import purge_expired_notifications

__all__ = ["purge_expired_notifications"]
