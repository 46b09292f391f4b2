"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from freefor.schemas.availability import (
    AvailabilityEntryOut,
    CreateAvailabilityRequest,
    OverlapOut,
    OverlapRequest,
    RecurrenceIn,
    RecurrenceOut,
    TimeWindowOut,
    UpdateAvailabilityRequest,
)
from freefor.schemas.calendar import (
    CalendarConnectionOut,
    ConnectCalendarRequest,
    DisconnectOut,
    ProviderCalendarOut,
    SyncCalendarsRequest,
    SyncSummaryOut,
)
from freefor.schemas.friends import (
    FriendEdgeOut,
    FriendOut,
    FriendRequestOut,
    FriendRequestsOut,
    FriendshipStatusOut,
)
from freefor.schemas.notifications import (
    BulkNotifyResultOut,
    DeliveryResultOut,
    MarkReadOut,
    MarkReadRequest,
    NotificationOut,
    NotificationPage,
    NotifyResultOut,
    PushSubscriptionOut,
    PushSubscriptionRequest,
    PushUnsubscribeRequest,
    UnreadCountOut,
)
from freefor.schemas.profile import (
    PageInfo,
    ProfileOut,
    ProfilePage,
    PublicProfileOut,
    UpdateProfileRequest,
    UsernameCheckOut,
)

__all__ = [
    # Availability
    "AvailabilityEntryOut",
    "CreateAvailabilityRequest",
    "UpdateAvailabilityRequest",
    "RecurrenceIn",
    "RecurrenceOut",
    "OverlapRequest",
    "OverlapOut",
    "TimeWindowOut",
    # Calendar
    "CalendarConnectionOut",
    "ConnectCalendarRequest",
    "DisconnectOut",
    "ProviderCalendarOut",
    "SyncCalendarsRequest",
    "SyncSummaryOut",
    # Friends
    "FriendEdgeOut",
    "FriendOut",
    "FriendRequestOut",
    "FriendRequestsOut",
    "FriendshipStatusOut",
    # Notifications
    "BulkNotifyResultOut",
    "DeliveryResultOut",
    "MarkReadOut",
    "MarkReadRequest",
    "NotificationOut",
    "NotificationPage",
    "NotifyResultOut",
    "PushSubscriptionOut",
    "PushSubscriptionRequest",
    "PushUnsubscribeRequest",
    "UnreadCountOut",
    # Profiles
    "PageInfo",
    "ProfileOut",
    "ProfilePage",
    "PublicProfileOut",
    "UpdateProfileRequest",
    "UsernameCheckOut",
]
