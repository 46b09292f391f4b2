"""Notification and push subscription Pydantic schemas."""

import base64
import binascii
import re
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

CategoryValue = Literal[
    "general",
    "friend_request",
    "friend_accepted",
    "game_invitation",
    "availability_match",
    "system",
    "test",
]
PriorityValue = Literal["low", "normal", "high"]

_BASE64URL_RE = re.compile(r"[A-Za-z0-9_-]+={0,2}")

# =============================================================================
# Request Schemas
# =============================================================================


class MarkReadRequest(BaseModel):
    """Mark specific notifications read, or all of them when ids is omitted."""

    notification_ids: list[UUID] | None = None


class PushKeys(BaseModel):
    """Subscription keys, base64url encoded with or without padding."""

    p256dh: str = Field(..., min_length=1, max_length=256)
    auth: str = Field(..., min_length=1, max_length=256)

    @field_validator("p256dh", "auth")
    @classmethod
    def check_base64url(cls, value: str) -> str:
        if not _BASE64URL_RE.fullmatch(value):
            raise ValueError("must be base64url encoded")
        stripped = value.rstrip("=")
        try:
            base64.urlsafe_b64decode(stripped + "=" * (-len(stripped) % 4))
        except binascii.Error as e:
            raise ValueError("must be base64url encoded") from e
        return value


class PushSubscriptionRequest(BaseModel):
    """Browser PushSubscription JSON as produced by ``subscription.toJSON()``."""

    endpoint: str = Field(..., min_length=1, max_length=2048)
    keys: PushKeys
    user_agent: str | None = Field(default=None, max_length=512)


class PushUnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=2048)


# =============================================================================
# Response Schemas
# =============================================================================


class NotificationOut(BaseModel):
    id: UUID
    title: str
    body: str
    category: CategoryValue
    payload: dict[str, Any]
    priority: PriorityValue
    is_read: bool
    read_at: datetime | None
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationPage(BaseModel):
    notifications: list[NotificationOut]
    unread_count: int
    page: int
    limit: int
    total: int
    has_more: bool


class DeliveryResultOut(BaseModel):
    subscription_id: UUID
    success: bool
    status_code: int | None = None
    error: str | None = None
    gone: bool = False


class NotifyResultOut(BaseModel):
    """Outcome of one notify call. The record is persisted regardless of delivery."""

    notification_id: UUID
    attempted: int
    succeeded: int
    message: str | None = None
    results: list[DeliveryResultOut] = Field(default_factory=list)


class UnreadCountOut(BaseModel):
    unread_count: int
    by_category: dict[str, int]


class MarkReadOut(BaseModel):
    updated: int


class PushSubscriptionOut(BaseModel):
    id: UUID
    endpoint: str
    user_agent: str | None
    is_active: bool
    last_used_at: datetime | None
    last_error: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulkNotifyResultOut(BaseModel):
    total: int
    attempted: int
    succeeded: int
    results: list[NotifyResultOut]
