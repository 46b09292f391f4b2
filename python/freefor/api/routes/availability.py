"""Availability routes.

Routes are transport-only:
- Extract viewer_user_id from request.state
- Call exactly one service function
- Return success(...) or raise ApiError

Query-string instants must carry an offset; naive values are rejected with
E_INVALID_INSTANT by the service layer.

IMPORTANT: /availability/me and /availability/overlap must be registered
BEFORE /availability/{entry_id}.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from freefor.api.deps import get_db
from freefor.auth.middleware import Viewer, get_viewer
from freefor.responses import success_response
from freefor.schemas.availability import (
    CreateAvailabilityRequest,
    OverlapRequest,
    UpdateAvailabilityRequest,
)
from freefor.services import availability as availability_service
from freefor.services import overlap as overlap_service

router = APIRouter()


# =============================================================================
# Static routes (MUST be before /availability/{entry_id})
# =============================================================================


@router.get("/availability/me")
def list_my_availability(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    start: Annotated[datetime | None, Query(description="Window start (defaults to now)")] = None,
    end: Annotated[
        datetime | None, Query(description="Window end (defaults to start + 7d)")
    ] = None,
) -> dict:
    """The viewer's entries in a window, recurring templates expanded.

    Includes hidden entries.
    """
    result = availability_service.list_my_entries(db, viewer.user_id, start=start, end=end)
    return success_response([e.model_dump(mode="json") for e in result])


@router.post("/availability/overlap")
def find_overlap(
    body: OverlapRequest,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Common free time for a group of public users.

    Errors:
        E_TOO_MANY_USERS (400): More distinct users than the configured maximum.
        E_USER_NOT_FOUND (404): Any listed user is missing or private.
    """
    result = overlap_service.find_overlap(db, body.user_ids, body.start, body.end)
    return success_response(result.model_dump(mode="json"))


@router.post("/availability", status_code=201)
def create_availability(
    body: CreateAvailabilityRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a manual availability entry owned by the viewer.

    Errors:
        E_INVALID_RANGE (400): end <= start.
        E_INVALID_RECURRENCE (400): Recurrence payload is inconsistent.
    """
    result = availability_service.create_entry(db, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Entry routes
# =============================================================================


@router.patch("/availability/{entry_id}")
def update_availability(
    entry_id: UUID,
    body: UpdateAvailabilityRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Update a manual entry owned by the viewer.

    Errors:
        E_ENTRY_NOT_FOUND (404): Missing or not owned by the viewer.
        E_IMMUTABLE_SOURCE (409): The entry was imported from a calendar.
    """
    result = availability_service.update_entry(db, viewer.user_id, entry_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/availability/{entry_id}", status_code=204)
def delete_availability(
    entry_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a manual entry owned by the viewer."""
    availability_service.delete_entry(db, viewer.user_id, entry_id)
    return Response(status_code=204)


@router.get("/users/{user_id}/availability")
def list_user_availability(
    user_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    start: Annotated[datetime | None, Query()] = None,
    end: Annotated[datetime | None, Query()] = None,
) -> dict:
    """Visible entries of a public user in a window.

    Errors:
        E_USER_NOT_FOUND (404): Missing or private.
    """
    result = availability_service.list_public_entries(db, user_id, start=start, end=end)
    return success_response([e.model_dump(mode="json") for e in result])
