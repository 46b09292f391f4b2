"""External calendar routes.

The ``{provider}`` path segment selects the adapter; unknown providers are
rejected with E_UNSUPPORTED_PROVIDER before any credential is touched.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from freefor.api.deps import get_calendar_provider, get_db
from freefor.auth.middleware import Viewer, get_viewer
from freefor.responses import success_response
from freefor.schemas.calendar import ConnectCalendarRequest, SyncCalendarsRequest
from freefor.services import calendar_sync as calendar_service
from freefor.services.calendar_provider import CalendarProvider

router = APIRouter()


@router.post("/calendar/{provider}/connect")
def connect_calendar(
    provider: str,
    body: ConnectCalendarRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Store provider credentials for the viewer. Tokens are encrypted at rest."""
    result = calendar_service.connect(
        db,
        viewer.user_id,
        provider,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
    )
    return success_response(result.model_dump(mode="json"))


@router.delete("/calendar/{provider}")
def disconnect_calendar(
    provider: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Forget credentials and delete every entry imported from the provider."""
    result = calendar_service.disconnect(db, viewer.user_id, provider)
    return success_response(result.model_dump(mode="json"))


@router.get("/calendar/{provider}/calendars")
async def list_calendars(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    calendar_provider: Annotated[CalendarProvider, Depends(get_calendar_provider)],
) -> dict:
    """Calendars readable with the stored credential.

    Errors:
        E_CALENDAR_NOT_CONNECTED (404): No live connection.
        E_CALENDAR_RECONNECT_REQUIRED (409): Provider rejected the credential.
        E_UPSTREAM (502): Provider failure.
    """
    result = await calendar_service.list_provider_calendars(db, calendar_provider, viewer.user_id)
    return success_response([c.model_dump(mode="json") for c in result])


@router.post("/calendar/{provider}/sync")
async def sync_calendars(
    body: SyncCalendarsRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    calendar_provider: Annotated[CalendarProvider, Depends(get_calendar_provider)],
) -> dict:
    """Import busy blocks from the selected calendars. Safe to repeat."""
    result = await calendar_service.sync_calendars(
        db, calendar_provider, viewer.user_id, body.calendar_ids
    )
    return success_response(result.model_dump(mode="json"))
