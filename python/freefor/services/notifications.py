"""Notification fan-out service layer.

``notify`` always persists the notification record first, so in-app history
survives even when no push endpoint exists or every delivery fails. Delivery
then fans out to each active subscription concurrently; every endpoint's
failure is isolated and recorded on that subscription only:

- gone (HTTP 404/410): subscription deactivated, error recorded
- any other failure: error recorded, subscription stays active
- success: last_used_at updated, previous error cleared

Delivery problems are reported in the result and never raised.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freefor.config import get_settings
from freefor.db.models import Notification, NotificationCategory, PushSubscription
from freefor.db.session import transaction
from freefor.db.types import utcnow
from freefor.errors import ApiErrorCode, NotFoundError, ValidationError
from freefor.logging import get_logger
from freefor.schemas.notifications import (
    BulkNotifyResultOut,
    DeliveryResultOut,
    MarkReadOut,
    NotificationOut,
    NotificationPage,
    NotifyResultOut,
    PushSubscriptionOut,
    PushSubscriptionRequest,
    UnreadCountOut,
)
from freefor.services.push import PushDeliveryError, PushSender, PushTarget

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

MAX_TITLE_LENGTH = 100
MAX_BODY_LENGTH = 500

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

ICON = "/icon-192x192.png"
BADGE = "/icon-badge.png"

REQUIRE_INTERACTION_CATEGORIES = frozenset(
    {NotificationCategory.friend_request.value, NotificationCategory.game_invitation.value}
)

NOTIFICATION_ACTIONS: dict[str, list[dict[str, str]]] = {
    NotificationCategory.friend_request.value: [
        {"action": "accept", "title": "Accept", "icon": "/icon-check.png"},
        {"action": "decline", "title": "Decline", "icon": "/icon-close.png"},
    ],
    NotificationCategory.game_invitation.value: [
        {"action": "join", "title": "Join", "icon": "/icon-play.png"},
        {"action": "decline", "title": "Decline", "icon": "/icon-close.png"},
    ],
    NotificationCategory.availability_match.value: [
        {"action": "view", "title": "View Match", "icon": "/icon-calendar.png"},
    ],
}


# =============================================================================
# Helper Functions
# =============================================================================


def notification_to_out(notification: Notification) -> NotificationOut:
    return NotificationOut(
        id=notification.id,
        title=notification.title,
        body=notification.body,
        category=notification.category,
        payload=dict(notification.payload or {}),
        priority=notification.priority,
        is_read=notification.is_read,
        read_at=notification.read_at,
        created_at=notification.created_at,
        expires_at=notification.expires_at,
    )


def subscription_to_out(subscription: PushSubscription) -> PushSubscriptionOut:
    return PushSubscriptionOut.model_validate(subscription)


def build_push_payload(notification: Notification) -> dict[str, Any]:
    """JSON payload the service worker receives for a notification."""
    category = notification.category
    return {
        "title": notification.title,
        "body": notification.body,
        "category": category,
        "data": {
            **(notification.payload or {}),
            "notification_id": str(notification.id),
            "timestamp": notification.created_at.isoformat(),
        },
        "icon": ICON,
        "badge": BADGE,
        # Groups notifications of the same category on the device
        "tag": category,
        "require_interaction": category in REQUIRE_INTERACTION_CATEGORIES,
        "actions": NOTIFICATION_ACTIONS.get(category, []),
    }


def _validate_message(title: str, body: str) -> None:
    if not title or len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            ApiErrorCode.E_VALIDATION_FAILED,
            f"Notification title must be 1-{MAX_TITLE_LENGTH} characters",
        )
    if len(body) > MAX_BODY_LENGTH:
        raise ValidationError(
            ApiErrorCode.E_VALIDATION_FAILED,
            f"Notification body must be at most {MAX_BODY_LENGTH} characters",
        )


async def _deliver(
    sender: PushSender, subscription: PushSubscription, payload: dict[str, Any]
) -> tuple[PushSubscription, PushDeliveryError | None]:
    target = PushTarget(
        endpoint=subscription.endpoint,
        p256dh=subscription.p256dh_key,
        auth=subscription.auth_key,
    )
    try:
        await sender.send(target, payload)
    except PushDeliveryError as e:
        return subscription, e
    except Exception as e:
        # A broken sender or bad stored keys must not sink sibling deliveries
        logger.exception(
            "push_delivery_crashed",
            subscription_id=str(subscription.id),
            error_type=type(e).__name__,
        )
        return subscription, PushDeliveryError(f"Push delivery failed: {type(e).__name__}")
    return subscription, None


def _unread_filter(user_id: UUID, now: datetime):
    return (
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
        Notification.expires_at > now,
    )


# =============================================================================
# Fan-out
# =============================================================================


async def notify(
    db: Session,
    sender: PushSender,
    target_user_id: UUID,
    title: str,
    body: str,
    category: str = NotificationCategory.general.value,
    payload: dict[str, Any] | None = None,
    priority: str = "normal",
) -> NotifyResultOut:
    """Persist a notification and push it to every active endpoint of the user.

    Args:
        db: Database session.
        sender: Push delivery backend.
        target_user_id: Recipient.
        title: Up to 100 characters.
        body: Up to 500 characters.
        category: Notification category (drives tag, actions, interaction).
        payload: Opaque data passed through to the client.
        priority: low | normal | high.

    Returns:
        The stored notification id with attempted / succeeded delivery counts.

    Raises:
        ValidationError: If title or body is too long.
    """
    _validate_message(title, body)

    now = utcnow()
    notification = Notification(
        user_id=target_user_id,
        title=title,
        body=body,
        category=category,
        payload=payload or {},
        priority=priority,
        is_read=False,
        created_at=now,
        expires_at=now + timedelta(days=get_settings().notification_ttl_days),
    )
    with transaction(db):
        db.add(notification)

    subscriptions = list(
        db.scalars(
            select(PushSubscription).where(
                PushSubscription.user_id == target_user_id,
                PushSubscription.is_active.is_(True),
            )
        )
    )
    if not subscriptions:
        return NotifyResultOut(
            notification_id=notification.id,
            attempted=0,
            succeeded=0,
            message="no active subscriptions",
        )
    if not sender.enabled:
        return NotifyResultOut(
            notification_id=notification.id,
            attempted=0,
            succeeded=0,
            message="push notifications disabled",
        )

    push_payload = build_push_payload(notification)
    outcomes = await asyncio.gather(*(_deliver(sender, s, push_payload) for s in subscriptions))

    results: list[DeliveryResultOut] = []
    delivered_at = utcnow()
    with transaction(db):
        for subscription, error in outcomes:
            if error is None:
                subscription.last_used_at = delivered_at
                subscription.last_error = None
                results.append(DeliveryResultOut(subscription_id=subscription.id, success=True))
                continue

            subscription.last_error = error.message
            if error.gone:
                subscription.is_active = False
            logger.warning(
                "push_delivery_failed",
                subscription_id=str(subscription.id),
                status_code=error.status_code,
                gone=error.gone,
            )
            results.append(
                DeliveryResultOut(
                    subscription_id=subscription.id,
                    success=False,
                    status_code=error.status_code,
                    error=error.message,
                    gone=error.gone,
                )
            )

    succeeded = sum(1 for r in results if r.success)
    logger.info(
        "notification_sent",
        notification_id=str(notification.id),
        category=category,
        attempted=len(results),
        succeeded=succeeded,
    )
    return NotifyResultOut(
        notification_id=notification.id,
        attempted=len(results),
        succeeded=succeeded,
        results=results,
    )


async def notify_many(
    db: Session,
    sender: PushSender,
    user_ids: list[UUID],
    title: str,
    body: str,
    category: str = NotificationCategory.general.value,
    payload: dict[str, Any] | None = None,
    priority: str = "normal",
) -> BulkNotifyResultOut:
    """notify() for each user in turn; one session cannot be shared across tasks."""
    results = []
    for user_id in dict.fromkeys(user_ids):
        results.append(
            await notify(db, sender, user_id, title, body, category, payload, priority)
        )
    return BulkNotifyResultOut(
        total=len(results),
        attempted=sum(r.attempted for r in results),
        succeeded=sum(r.succeeded for r in results),
        results=results,
    )


async def send_test_notification(
    db: Session, sender: PushSender, user_id: UUID
) -> NotifyResultOut:
    return await notify(
        db,
        sender,
        user_id,
        title="Test notification",
        body="Push notifications are working.",
        category=NotificationCategory.test.value,
        payload={"test": True},
    )


# =============================================================================
# Inbox
# =============================================================================


def list_notifications(
    db: Session,
    user_id: UUID,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    category: str | None = None,
    unread_only: bool = False,
) -> NotificationPage:
    """Unexpired notifications for the user, newest first."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_LIMIT)
    now = utcnow()

    conditions = [Notification.user_id == user_id, Notification.expires_at > now]
    if category:
        conditions.append(Notification.category == category)
    if unread_only:
        conditions.append(Notification.is_read.is_(False))

    total = db.scalar(select(func.count()).select_from(Notification).where(*conditions)) or 0
    rows = db.scalars(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return NotificationPage(
        notifications=[notification_to_out(n) for n in rows],
        unread_count=unread_count(db, user_id),
        page=page,
        limit=limit,
        total=total,
        has_more=(page - 1) * limit + len(rows) < total,
    )


def mark_read(
    db: Session, user_id: UUID, notification_ids: list[UUID] | None = None
) -> MarkReadOut:
    """Mark the given notifications (or all unread ones) as read.

    Ids belonging to other users are ignored.
    """
    now = utcnow()
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=now)
    )
    if notification_ids is not None:
        if not notification_ids:
            return MarkReadOut(updated=0)
        stmt = stmt.where(Notification.id.in_(notification_ids))

    with transaction(db):
        result = db.execute(stmt.execution_options(synchronize_session=False))
    return MarkReadOut(updated=result.rowcount or 0)


def unread_count(db: Session, user_id: UUID) -> int:
    return (
        db.scalar(
            select(func.count()).select_from(Notification).where(*_unread_filter(user_id, utcnow()))
        )
        or 0
    )


def counts_by_category(db: Session, user_id: UUID) -> dict[str, int]:
    """Unread counts keyed by category."""
    rows = db.execute(
        select(Notification.category, func.count())
        .where(*_unread_filter(user_id, utcnow()))
        .group_by(Notification.category)
    ).all()
    return {category: count for category, count in rows}


def get_unread_summary(db: Session, user_id: UUID) -> UnreadCountOut:
    by_category = counts_by_category(db, user_id)
    return UnreadCountOut(unread_count=sum(by_category.values()), by_category=by_category)


def purge_expired(db: Session, now: datetime | None = None) -> int:
    """Delete notifications past their expiry. Returns the number removed."""
    cutoff = now or utcnow()
    with transaction(db):
        result = db.execute(
            delete(Notification)
            .where(Notification.expires_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
    deleted = result.rowcount or 0
    logger.info("expired_notifications_purged", deleted=deleted)
    return deleted


# =============================================================================
# Push subscriptions
# =============================================================================


def _apply_subscription(
    subscription: PushSubscription, user_id: UUID, req: PushSubscriptionRequest
) -> None:
    subscription.user_id = user_id
    subscription.p256dh_key = req.keys.p256dh
    subscription.auth_key = req.keys.auth
    subscription.user_agent = req.user_agent
    subscription.is_active = True
    subscription.last_error = None


def subscribe(db: Session, user_id: UUID, req: PushSubscriptionRequest) -> PushSubscriptionOut:
    """Register an endpoint, or re-activate and re-own an existing one.

    Endpoints are unique across users: a browser that signs into another
    account moves its endpoint to that account.
    """
    subscription = db.scalar(
        select(PushSubscription).where(PushSubscription.endpoint == req.endpoint)
    )
    try:
        with transaction(db):
            if subscription is None:
                subscription = PushSubscription(endpoint=req.endpoint)
                db.add(subscription)
            _apply_subscription(subscription, user_id, req)
    except IntegrityError:
        # Concurrent registration of the same endpoint; take over the winner's row
        subscription = db.scalar(
            select(PushSubscription).where(PushSubscription.endpoint == req.endpoint)
        )
        if subscription is None:
            raise
        with transaction(db):
            _apply_subscription(subscription, user_id, req)

    logger.info("push_subscription_saved", subscription_id=str(subscription.id))
    return subscription_to_out(subscription)


def unsubscribe(db: Session, user_id: UUID, endpoint: str) -> None:
    """Remove one of the user's endpoints.

    Raises:
        NotFoundError(E_SUBSCRIPTION_NOT_FOUND): If the user has no such endpoint.
    """
    subscription = db.scalar(
        select(PushSubscription).where(
            PushSubscription.endpoint == endpoint, PushSubscription.user_id == user_id
        )
    )
    if subscription is None:
        raise NotFoundError(ApiErrorCode.E_SUBSCRIPTION_NOT_FOUND, "Push subscription not found")
    with transaction(db):
        db.delete(subscription)


def list_subscriptions(db: Session, user_id: UUID) -> list[PushSubscriptionOut]:
    rows = db.scalars(
        select(PushSubscription)
        .where(PushSubscription.user_id == user_id)
        .order_by(PushSubscription.created_at.desc())
    )
    return [subscription_to_out(s) for s in rows]
