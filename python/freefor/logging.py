"""Structured logging for the API and the Celery worker (structlog).

Every entry is a JSON object carrying whatever correlation context is set
for the current request or task:

- request_id, user_id, path, method (HTTP requests)
- task_name, task_id (Celery tasks)

Calendar credentials and push subscription keys must never reach the logs.
``redact_sensitive`` masks them wherever they appear as top-level event
fields, so a careless ``logger.info("x", access_token=...)`` is still safe.

Usage:
    from freefor.logging import configure_logging, get_logger

    configure_logging()  # once per process
    logger = get_logger(__name__)
    logger.info("friend_request_sent", recipient_id=str(recipient_id))
"""

import logging
import sys
from contextvars import ContextVar

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)
task_name_var: ContextVar[str | None] = ContextVar("task_name", default=None)
task_id_var: ContextVar[str | None] = ContextVar("task_id", default=None)

_CONTEXT_VARS: tuple[ContextVar[str | None], ...] = (
    request_id_var,
    user_id_var,
    task_name_var,
    task_id_var,
    path_var,
    method_var,
)

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "token",
        "authorization",
        "secret",
        "p256dh",
        "auth",
        "vapid_private_key",
    }
)

REDACTED = "***"


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Copy every non-empty correlation ContextVar into the event."""
    for var in _CONTEXT_VARS:
        value = var.get()
        if value:
            event_dict[var.name] = value
    return event_dict


def redact_sensitive(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Mask credential-bearing fields."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def configure_logging(json_format: bool = True) -> None:
    """Route structlog and stdlib logging through one formatter on stdout.

    Args:
        json_format: JSON lines when True, the structlog console renderer otherwise.
    """
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    # httpx logs full URLs, which include calendar ids and page tokens
    for noisy in ("httpx", "httpcore", "uvicorn.access", "celery.app.trace"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# =============================================================================
# Request context
# =============================================================================


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind correlation fields for the current request.

    ``path`` is the raw path only; query strings may carry window bounds and
    user ids and are never logged.
    """
    request_id_var.set(request_id)
    for var, value in ((user_id_var, user_id), (path_var, path), (method_var, method)):
        if value is not None:
            var.set(value)


def set_user_id(user_id: str | None) -> None:
    """Attach the authenticated user once the bearer token is verified."""
    user_id_var.set(user_id)


def clear_request_context() -> None:
    for var in (request_id_var, user_id_var, path_var, method_var):
        var.set(None)


def get_request_id() -> str | None:
    return request_id_var.get()


# =============================================================================
# Celery task context
# =============================================================================


def configure_task_logging(
    request_id: str | None = None,
    task_name: str | None = None,
    task_id: str | None = None,
) -> None:
    """Bind correlation fields at the start of a Celery task.

    Args:
        request_id: Request that enqueued the task, if any.
        task_name: Registered task name.
        task_id: ``self.request.id`` of the running task.
    """
    request_id_var.set(request_id)
    task_name_var.set(task_name)
    task_id_var.set(task_id)


def clear_task_context() -> None:
    for var in (request_id_var, task_name_var, task_id_var, user_id_var):
        var.set(None)
