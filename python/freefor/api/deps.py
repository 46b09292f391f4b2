"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, the push sender and calendar
provider adapters.
"""

from fastapi import Request

from freefor.config import get_settings
from freefor.db.session import get_db
from freefor.services.calendar_provider import CalendarProvider, create_provider
from freefor.services.push import PushSender

__all__ = ["get_db", "get_push_sender", "get_calendar_provider"]


def get_push_sender(request: Request) -> PushSender:
    """The push sender created at startup (disabled when VAPID keys are unset)."""
    return request.app.state.push_sender


def get_calendar_provider(provider: str, request: Request) -> CalendarProvider:
    """Adapter for the ``{provider}`` path parameter over the shared HTTP client.

    Raises:
        InvalidRequestError(E_UNSUPPORTED_PROVIDER): If the provider is unknown.
    """
    return create_provider(
        provider,
        request.app.state.httpx_client,
        timeout_s=get_settings().calendar_http_timeout_s,
    )
