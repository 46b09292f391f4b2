"""Friend graph Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from freefor.schemas.profile import PublicProfileOut

FriendStatusValue = Literal["pending", "accepted", "declined", "blocked"]
FriendshipStateValue = Literal["none", "pending", "accepted", "declined", "blocked"]


class FriendEdgeOut(BaseModel):
    """Response schema for a friend edge."""

    id: UUID
    requester_user_id: UUID
    recipient_user_id: UUID
    status: FriendStatusValue
    accepted_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FriendOut(BaseModel):
    """An edge resolved to the other party's public profile."""

    edge_id: UUID
    user: PublicProfileOut
    since: datetime


class FriendRequestOut(BaseModel):
    edge: FriendEdgeOut
    user: PublicProfileOut


class FriendRequestsOut(BaseModel):
    received: list[FriendRequestOut]
    sent: list[FriendRequestOut]


class FriendshipStatusOut(BaseModel):
    status: FriendshipStateValue
    edge: FriendEdgeOut | None = None
    is_requester: bool = False
