"""Friend graph routes.

IMPORTANT: Static routes (/friends/requests, /friends/blocked,
/friends/status/..., /friends/block/...) must be registered BEFORE dynamic
routes (/friends/{edge_id}) to prevent UUID path capture.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from freefor.api.deps import get_db, get_push_sender
from freefor.auth.middleware import Viewer, get_viewer
from freefor.responses import success_response
from freefor.services import friends as friends_service
from freefor.services.push import PushSender

router = APIRouter()


# =============================================================================
# Static routes (MUST be before /friends/{edge_id} routes)
# =============================================================================


@router.get("/friends")
def list_friends(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Accepted friends of the viewer, newest first."""
    result = friends_service.list_friends(db, viewer.user_id)
    return success_response([f.model_dump(mode="json") for f in result])


@router.get("/friends/requests")
def list_friend_requests(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Pending requests, split into received and sent."""
    result = friends_service.list_requests(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/friends/blocked")
def list_blocked(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = friends_service.list_blocked(db, viewer.user_id)
    return success_response([f.model_dump(mode="json") for f in result])


@router.get("/friends/status/{user_id}")
def get_friendship_status(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = friends_service.get_friendship_status(db, viewer.user_id, user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/friends/requests/{user_id}", status_code=201)
async def send_friend_request(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    sender: Annotated[PushSender, Depends(get_push_sender)],
) -> dict:
    """Send a friend request. The recipient is notified.

    Errors:
        E_SELF_FRIENDSHIP (400): Request to self.
        E_USER_NOT_FOUND (404): Recipient does not exist.
        E_FRIENDSHIP_EXISTS (409): Any edge already joins the pair.
    """
    result = await friends_service.send_request(db, sender, viewer.user_id, user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/friends/block/{user_id}")
def block_user(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Block a user, replacing any existing edge between the pair."""
    result = friends_service.block_user(db, viewer.user_id, user_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/friends/block/{user_id}", status_code=204)
def unblock_user(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    friends_service.unblock_user(db, viewer.user_id, user_id)
    return Response(status_code=204)


# =============================================================================
# Edge routes
# =============================================================================


@router.post("/friends/{edge_id}/accept")
async def accept_friend_request(
    edge_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    sender: Annotated[PushSender, Depends(get_push_sender)],
) -> dict:
    """Accept a pending request. Recipient-only; the requester is notified."""
    result = await friends_service.accept_request(db, sender, viewer.user_id, edge_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/friends/{edge_id}/decline")
def decline_friend_request(
    edge_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Decline a pending request. Recipient-only."""
    result = friends_service.decline_request(db, viewer.user_id, edge_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/friends/{edge_id}/cancel", status_code=204)
def cancel_friend_request(
    edge_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Withdraw a pending request. Requester-only."""
    friends_service.cancel_request(db, viewer.user_id, edge_id)
    return Response(status_code=204)


@router.delete("/friends/{edge_id}/declined", status_code=204)
def remove_declined_request(
    edge_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Clear a declined edge so either party may send a new request."""
    friends_service.remove_declined(db, viewer.user_id, edge_id)
    return Response(status_code=204)


@router.delete("/friends/{edge_id}", status_code=204)
def remove_friend(
    edge_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Remove an accepted friendship. Either party may remove it."""
    friends_service.remove_friend(db, viewer.user_id, edge_id)
    return Response(status_code=204)
