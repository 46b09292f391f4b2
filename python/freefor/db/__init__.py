"""Database module for freefor.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from freefor.db.engine import create_db_engine, get_engine
from freefor.db.models import (
    AvailabilityEntry,
    Base,
    CalendarConnection,
    EntryKind,
    EntryOrigin,
    FriendEdge,
    FriendStatus,
    Notification,
    NotificationCategory,
    NotificationPriority,
    Platform,
    PushSubscription,
    RecurrenceFrequency,
    User,
)
from freefor.db.session import get_db, session_scope, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "session_scope",
    "transaction",
    # Base
    "Base",
    # Enums
    "EntryKind",
    "EntryOrigin",
    "RecurrenceFrequency",
    "FriendStatus",
    "NotificationCategory",
    "NotificationPriority",
    "Platform",
    # Models
    "User",
    "AvailabilityEntry",
    "FriendEdge",
    "Notification",
    "PushSubscription",
    "CalendarConnection",
]
