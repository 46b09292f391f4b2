"""Notification inbox and push subscription routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from freefor.api.deps import get_db, get_push_sender
from freefor.auth.middleware import Viewer, get_viewer
from freefor.responses import success_response
from freefor.schemas.notifications import (
    CategoryValue,
    MarkReadRequest,
    PushSubscriptionRequest,
    PushUnsubscribeRequest,
)
from freefor.services import notifications as notifications_service
from freefor.services.push import PushSender

router = APIRouter()


@router.get("/notifications")
def list_notifications(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, description="Maximum results (clamped to 100)"),
    category: CategoryValue | None = None,
    unread_only: bool = False,
) -> dict:
    """The viewer's unexpired notifications, newest first."""
    result = notifications_service.list_notifications(
        db, viewer.user_id, page=page, limit=limit, category=category, unread_only=unread_only
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/notifications/unread-count")
def get_unread_count(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = notifications_service.get_unread_summary(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/notifications/read")
def mark_notifications_read(
    body: MarkReadRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Mark the listed notifications read, or all of them when none are listed."""
    result = notifications_service.mark_read(db, viewer.user_id, body.notification_ids)
    return success_response(result.model_dump(mode="json"))


@router.post("/notifications/test")
async def send_test_notification(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    sender: Annotated[PushSender, Depends(get_push_sender)],
) -> dict:
    """Send a test notification to the viewer's own devices."""
    result = await notifications_service.send_test_notification(db, sender, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/push/subscriptions")
def list_push_subscriptions(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = notifications_service.list_subscriptions(db, viewer.user_id)
    return success_response([s.model_dump(mode="json") for s in result])


@router.post("/push/subscriptions", status_code=201)
def subscribe_push(
    body: PushSubscriptionRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Register a browser push subscription. Re-registering an endpoint reactivates it."""
    result = notifications_service.subscribe(db, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/push/subscriptions", status_code=204)
def unsubscribe_push(
    body: PushUnsubscribeRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Deactivate one of the viewer's push subscriptions.

    Errors:
        E_SUBSCRIPTION_NOT_FOUND (404): The viewer has no subscription with that endpoint.
    """
    notifications_service.unsubscribe(db, viewer.user_id, body.endpoint)
    return Response(status_code=204)
