"""Friend graph service layer.

One edge per unordered pair of users, with states pending / accepted /
declined / blocked (no edge means "none"):

    none     --request-------------> pending    (requester)
    pending  --accept--------------> accepted   (recipient only)
    pending  --decline-------------> declined   (recipient only)
    pending  --cancel--------------> none       (requester only)
    accepted --remove--------------> none       (either party)
    declined --remove_declined-----> none       (either party)
    any      --block---------------> blocked    (either party; blocker becomes requester)
    blocked  --unblock-------------> none       (blocker only)

The pair_key unique constraint is the only guard against two concurrent
requests for the same pair; the loser's IntegrityError is reported as the
same ConflictError a sequential duplicate gets.

Requests and acceptances notify the other party. A failed notification is
logged and never fails the friend operation.
"""

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from freefor.db.models import FriendEdge, FriendStatus, NotificationCategory, User
from freefor.db.session import transaction
from freefor.db.types import utcnow
from freefor.errors import (
    ApiError,
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from freefor.logging import get_logger
from freefor.schemas.friends import (
    FriendEdgeOut,
    FriendOut,
    FriendRequestOut,
    FriendRequestsOut,
    FriendshipStatusOut,
)
from freefor.services import notifications, profiles
from freefor.services.push import PushSender

logger = get_logger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================


def pair_key(a: UUID, b: UUID) -> str:
    """Canonical key of an unordered user pair."""
    low, high = sorted((str(a), str(b)))
    return f"{low}:{high}"


def edge_to_out(edge: FriendEdge) -> FriendEdgeOut:
    return FriendEdgeOut.model_validate(edge)


def find_edge_between(db: Session, a: UUID, b: UUID) -> FriendEdge | None:
    return db.scalar(select(FriendEdge).where(FriendEdge.pair_key == pair_key(a, b)))


def get_edge_for_party_or_404(db: Session, actor_id: UUID, edge_id: UUID) -> FriendEdge:
    """Load an edge the actor is a party to.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If the edge doesn't exist OR the
            actor is neither requester nor recipient.
    """
    edge = db.get(FriendEdge, edge_id)
    if edge is None or actor_id not in (edge.requester_user_id, edge.recipient_user_id):
        raise NotFoundError(ApiErrorCode.E_FRIENDSHIP_NOT_FOUND, "Friendship not found")
    return edge


def _require_existing_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return user


def _require_not_self(actor_id: UUID, other_id: UUID, message: str) -> None:
    if actor_id == other_id:
        raise InvalidRequestError(ApiErrorCode.E_SELF_FRIENDSHIP, message)


def _require_recipient_of_pending(edge: FriendEdge, actor_id: UUID) -> None:
    if edge.recipient_user_id != actor_id:
        raise ForbiddenError(
            ApiErrorCode.E_NOT_RECIPIENT, "Only the recipient can respond to a friend request"
        )
    if edge.status != FriendStatus.pending.value:
        raise ConflictError(ApiErrorCode.E_FRIENDSHIP_NOT_PENDING, "Friend request is not pending")


def _other_party(edge: FriendEdge, user_id: UUID) -> UUID:
    return edge.recipient_user_id if edge.requester_user_id == user_id else edge.requester_user_id


def _display_name(user: User) -> str:
    return user.display_name or user.username or "Someone"


async def _notify_quietly(db: Session, sender: PushSender, target_user_id: UUID, **kwargs) -> None:
    try:
        await notifications.notify(db, sender, target_user_id, **kwargs)
    except (SQLAlchemyError, ApiError):
        logger.exception("friend_notification_failed", target_user_id=str(target_user_id))


# =============================================================================
# Transitions
# =============================================================================


async def send_request(
    db: Session, sender: PushSender, requester_id: UUID, recipient_id: UUID
) -> FriendEdgeOut:
    """Create a pending edge from requester to recipient and notify the recipient.

    Args:
        db: Database session.
        sender: Push delivery backend for the friend_request notification.
        requester_id: The viewer.
        recipient_id: The user being asked.

    Returns:
        The new pending edge.

    Raises:
        InvalidRequestError(E_SELF_FRIENDSHIP): If requester == recipient.
        NotFoundError(E_USER_NOT_FOUND): If the recipient doesn't exist.
        ConflictError(E_FRIENDSHIP_EXISTS): If any edge already exists between
            the pair, including one created concurrently.
    """
    _require_not_self(requester_id, recipient_id, "You cannot send a friend request to yourself")
    recipient = _require_existing_user(db, recipient_id)

    if find_edge_between(db, requester_id, recipient_id) is not None:
        raise ConflictError(
            ApiErrorCode.E_FRIENDSHIP_EXISTS, "A friendship already exists between these users"
        )

    edge = FriendEdge(
        requester_user_id=requester_id,
        recipient_user_id=recipient.id,
        pair_key=pair_key(requester_id, recipient_id),
        status=FriendStatus.pending.value,
    )
    try:
        with transaction(db):
            db.add(edge)
    except IntegrityError as e:
        raise ConflictError(
            ApiErrorCode.E_FRIENDSHIP_EXISTS, "A friendship already exists between these users"
        ) from e

    logger.info("friend_request_sent", edge_id=str(edge.id))

    requester = db.get(User, requester_id)
    name = _display_name(requester) if requester else "Someone"
    await _notify_quietly(
        db,
        sender,
        recipient.id,
        title="New friend request",
        body=f"{name} wants to be your friend",
        category=NotificationCategory.friend_request.value,
        payload={"edge_id": str(edge.id), "requester_id": str(requester_id)},
        priority="high",
    )
    return edge_to_out(edge)


async def accept_request(
    db: Session, sender: PushSender, actor_id: UUID, edge_id: UUID
) -> FriendEdgeOut:
    """Accept a pending request and notify the requester.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If missing or the actor is not a party.
        ForbiddenError(E_NOT_RECIPIENT): If the actor is the requester.
        ConflictError(E_FRIENDSHIP_NOT_PENDING): If the edge is not pending.
    """
    edge = get_edge_for_party_or_404(db, actor_id, edge_id)
    _require_recipient_of_pending(edge, actor_id)

    with transaction(db):
        edge.status = FriendStatus.accepted.value
        edge.accepted_at = utcnow()

    logger.info("friend_request_accepted", edge_id=str(edge.id))

    accepter = db.get(User, actor_id)
    name = _display_name(accepter) if accepter else "Someone"
    await _notify_quietly(
        db,
        sender,
        edge.requester_user_id,
        title="Friend request accepted",
        body=f"{name} accepted your friend request",
        category=NotificationCategory.friend_accepted.value,
        payload={"edge_id": str(edge.id), "friend_id": str(actor_id)},
    )
    return edge_to_out(edge)


def decline_request(db: Session, actor_id: UUID, edge_id: UUID) -> FriendEdgeOut:
    """Decline a pending request.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If missing or the actor is not a party.
        ForbiddenError(E_NOT_RECIPIENT): If the actor is the requester.
        ConflictError(E_FRIENDSHIP_NOT_PENDING): If the edge is not pending.
    """
    edge = get_edge_for_party_or_404(db, actor_id, edge_id)
    _require_recipient_of_pending(edge, actor_id)

    with transaction(db):
        edge.status = FriendStatus.declined.value

    logger.info("friend_request_declined", edge_id=str(edge.id))
    return edge_to_out(edge)


def cancel_request(db: Session, actor_id: UUID, edge_id: UUID) -> None:
    """Withdraw a pending request.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If missing or the actor is not a party.
        ForbiddenError(E_NOT_REQUESTER): If the actor is the recipient.
        ConflictError(E_FRIENDSHIP_NOT_PENDING): If the edge is not pending.
    """
    edge = get_edge_for_party_or_404(db, actor_id, edge_id)
    if edge.requester_user_id != actor_id:
        raise ForbiddenError(
            ApiErrorCode.E_NOT_REQUESTER, "Only the requester can cancel a friend request"
        )
    if edge.status != FriendStatus.pending.value:
        raise ConflictError(ApiErrorCode.E_FRIENDSHIP_NOT_PENDING, "Friend request is not pending")

    with transaction(db):
        db.delete(edge)
    logger.info("friend_request_cancelled", edge_id=str(edge_id))


def remove_friend(db: Session, actor_id: UUID, edge_id: UUID) -> None:
    """Delete an accepted friendship. Either party may remove it.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If missing or the actor is not a party.
        ConflictError(E_FRIENDSHIP_NOT_ACCEPTED): If the edge is not accepted.
    """
    edge = get_edge_for_party_or_404(db, actor_id, edge_id)
    if edge.status != FriendStatus.accepted.value:
        raise ConflictError(ApiErrorCode.E_FRIENDSHIP_NOT_ACCEPTED, "You are not friends")

    with transaction(db):
        db.delete(edge)
    logger.info("friend_removed", edge_id=str(edge_id))


def remove_declined(db: Session, actor_id: UUID, edge_id: UUID) -> None:
    """Clear a declined edge so either user may send a fresh request.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If missing or the actor is not a party.
        ConflictError(E_FRIENDSHIP_NOT_DECLINED): If the edge is not declined.
    """
    edge = get_edge_for_party_or_404(db, actor_id, edge_id)
    if edge.status != FriendStatus.declined.value:
        raise ConflictError(
            ApiErrorCode.E_FRIENDSHIP_NOT_DECLINED, "Friend request was not declined"
        )

    with transaction(db):
        db.delete(edge)
    logger.info("declined_request_cleared", edge_id=str(edge_id))


def block_user(db: Session, blocker_id: UUID, blocked_id: UUID) -> FriendEdgeOut:
    """Replace any edge between the pair with a blocked edge owned by the blocker.

    Raises:
        InvalidRequestError(E_SELF_FRIENDSHIP): If blocker == blocked.
        NotFoundError(E_USER_NOT_FOUND): If the blocked user doesn't exist.
        ConflictError(E_FRIENDSHIP_EXISTS): If ``blocked_id`` already blocked the
            blocker, or a concurrent write recreated an edge.
    """
    _require_not_self(blocker_id, blocked_id, "You cannot block yourself")
    _require_existing_user(db, blocked_id)

    existing = find_edge_between(db, blocker_id, blocked_id)
    if existing is not None and existing.status == FriendStatus.blocked.value:
        if existing.requester_user_id == blocker_id:
            return edge_to_out(existing)
        # A block can only be lifted by its owner, never overwritten by the other side
        raise ConflictError(
            ApiErrorCode.E_FRIENDSHIP_EXISTS, "A friendship already exists between these users"
        )

    try:
        with transaction(db):
            if existing is not None:
                db.delete(existing)
                db.flush()
            edge = FriendEdge(
                requester_user_id=blocker_id,
                recipient_user_id=blocked_id,
                pair_key=pair_key(blocker_id, blocked_id),
                status=FriendStatus.blocked.value,
            )
            db.add(edge)
    except IntegrityError as e:
        raise ConflictError(
            ApiErrorCode.E_FRIENDSHIP_EXISTS, "Friendship changed concurrently; try again"
        ) from e

    logger.info("user_blocked", edge_id=str(edge.id))
    return edge_to_out(edge)


def unblock_user(db: Session, blocker_id: UUID, blocked_id: UUID) -> None:
    """Remove a block. Only the blocker can do this.

    Raises:
        NotFoundError(E_FRIENDSHIP_NOT_FOUND): If the viewer has not blocked
            ``blocked_id``, which includes the blocked party trying to unblock.
    """
    edge = find_edge_between(db, blocker_id, blocked_id)
    if (
        edge is None
        or edge.status != FriendStatus.blocked.value
        or edge.requester_user_id != blocker_id
    ):
        raise NotFoundError(ApiErrorCode.E_FRIENDSHIP_NOT_FOUND, "Block not found")

    with transaction(db):
        db.delete(edge)
    logger.info("user_unblocked", edge_id=str(edge.id))


# =============================================================================
# Queries
# =============================================================================


def get_friendship_status(db: Session, viewer_id: UUID, other_id: UUID) -> FriendshipStatusOut:
    """Relationship between the viewer and another user, from the viewer's side."""
    edge = find_edge_between(db, viewer_id, other_id) if viewer_id != other_id else None
    if edge is None:
        return FriendshipStatusOut(status="none")
    return FriendshipStatusOut(
        status=edge.status,
        edge=edge_to_out(edge),
        is_requester=edge.requester_user_id == viewer_id,
    )


def _edges_touching(db: Session, user_id: UUID, status: FriendStatus) -> list[FriendEdge]:
    return list(
        db.scalars(
            select(FriendEdge)
            .where(
                FriendEdge.status == status.value,
                or_(
                    FriendEdge.requester_user_id == user_id,
                    FriendEdge.recipient_user_id == user_id,
                ),
            )
            .order_by(FriendEdge.created_at.desc(), FriendEdge.id)
        )
    )


def _users_by_id(db: Session, user_ids: set[UUID]) -> dict[UUID, User]:
    if not user_ids:
        return {}
    return {u.id: u for u in db.scalars(select(User).where(User.id.in_(user_ids)))}


def list_friends(db: Session, user_id: UUID) -> list[FriendOut]:
    """Accepted edges touching the user, each resolved to the other party."""
    edges = _edges_touching(db, user_id, FriendStatus.accepted)
    users = _users_by_id(db, {_other_party(e, user_id) for e in edges})
    return [
        FriendOut(
            edge_id=edge.id,
            user=profiles.public_profile_to_out(users[_other_party(edge, user_id)]),
            since=edge.accepted_at or edge.updated_at,
        )
        for edge in edges
        if _other_party(edge, user_id) in users
    ]


def list_blocked(db: Session, user_id: UUID) -> list[FriendOut]:
    """Users the viewer has blocked."""
    edges = list(
        db.scalars(
            select(FriendEdge)
            .where(
                FriendEdge.status == FriendStatus.blocked.value,
                FriendEdge.requester_user_id == user_id,
            )
            .order_by(FriendEdge.created_at.desc(), FriendEdge.id)
        )
    )
    users = _users_by_id(db, {e.recipient_user_id for e in edges})
    return [
        FriendOut(
            edge_id=edge.id,
            user=profiles.public_profile_to_out(users[edge.recipient_user_id]),
            since=edge.created_at,
        )
        for edge in edges
        if edge.recipient_user_id in users
    ]


def list_requests(db: Session, user_id: UUID) -> FriendRequestsOut:
    """Pending requests split into received and sent."""
    edges = _edges_touching(db, user_id, FriendStatus.pending)
    users = _users_by_id(db, {_other_party(e, user_id) for e in edges})

    received: list[FriendRequestOut] = []
    sent: list[FriendRequestOut] = []
    for edge in edges:
        other = users.get(_other_party(edge, user_id))
        if other is None:
            continue
        item = FriendRequestOut(edge=edge_to_out(edge), user=profiles.public_profile_to_out(other))
        if edge.recipient_user_id == user_id:
            received.append(item)
        else:
            sent.append(item)
    return FriendRequestsOut(received=received, sent=sent)
