"""SQLAlchemy ORM models for freefor.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Enumerated columns are stored as text guarded by CHECK constraints so the
schema behaves the same on PostgreSQL and SQLite.
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from freefor.db.types import UTCDateTime, utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class EntryKind(str, PyEnum):
    """What an availability entry says about its time range."""

    available = "available"
    busy = "busy"
    override = "override"


class EntryOrigin(str, PyEnum):
    """Provenance of an availability entry."""

    manual = "manual"
    externally_synced = "externally_synced"


class RecurrenceFrequency(str, PyEnum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class FriendStatus(str, PyEnum):
    """Friend edge states. Absence of an edge is the implicit "none" state."""

    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    blocked = "blocked"


class NotificationCategory(str, PyEnum):
    general = "general"
    friend_request = "friend_request"
    friend_accepted = "friend_accepted"
    game_invitation = "game_invitation"
    availability_match = "availability_match"
    system = "system"
    test = "test"


class NotificationPriority(str, PyEnum):
    low = "low"
    normal = "normal"
    high = "high"


class Platform(str, PyEnum):
    """Gaming platforms a profile can list."""

    PC = "PC"
    PlayStation = "PlayStation"
    Xbox = "Xbox"
    Switch = "Switch"
    Mobile = "Mobile"
    VR = "VR"


def _in_values(column: str, enum_cls: type[PyEnum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# =============================================================================
# Models
# =============================================================================


class User(Base):
    """User profile model.

    The user ID matches the Supabase auth user ID (sub claim). The row is
    created on the first authenticated request; the username stays NULL until
    the user picks one.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    username: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferred_games: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    platforms: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    timezone: Mapped[str] = mapped_column(Text, default="UTC", nullable=False)
    region: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "username IS NULL OR length(username) BETWEEN 3 AND 30",
            name="ck_users_username_length",
        ),
        CheckConstraint(
            "bio IS NULL OR length(bio) <= 500",
            name="ck_users_bio_length",
        ),
        Index("ix_users_public_activity", "is_public", "last_active_at"),
    )


class AvailabilityEntry(Base):
    """A time range on a user's gaming calendar.

    Recurring entries are templates: start_at/end_at describe the first
    occurrence and the recurrence_* columns describe how it repeats.
    """

    __tablename__ = "availability_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_frequency: Mapped[str | None] = mapped_column(Text, nullable=True)
    recurrence_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recurrence_days_of_week: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    recurrence_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    origin: Mapped[str] = mapped_column(Text, default=EntryOrigin.manual.value, nullable=False)
    external_event_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_availability_entries_range"),
        CheckConstraint(_in_values("kind", EntryKind), name="ck_availability_entries_kind"),
        CheckConstraint(_in_values("origin", EntryOrigin), name="ck_availability_entries_origin"),
        CheckConstraint(
            "recurrence_interval IS NULL OR recurrence_interval >= 1",
            name="ck_availability_entries_interval",
        ),
        CheckConstraint(
            "origin = 'manual' OR (external_event_id IS NOT NULL AND provider_name IS NOT NULL)",
            name="ck_availability_entries_external_ref",
        ),
        UniqueConstraint(
            "owner_user_id",
            "provider_name",
            "external_event_id",
            name="uq_availability_entries_external_event",
        ),
        Index("ix_availability_entries_owner_start", "owner_user_id", "start_at"),
    )


class FriendEdge(Base):
    """Directed friendship record between two users.

    pair_key is the canonical "<low>:<high>" rendering of the two user IDs;
    its unique index allows at most one edge per unordered pair, which is
    what makes concurrent duplicate requests lose with a conflict. For
    blocked edges the requester is the blocker.
    """

    __tablename__ = "friend_edges"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    requester_user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    recipient_user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    pair_key: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "requester_user_id <> recipient_user_id",
            name="ck_friend_edges_not_self",
        ),
        CheckConstraint(_in_values("status", FriendStatus), name="ck_friend_edges_status"),
        UniqueConstraint("pair_key", name="uq_friend_edges_pair_key"),
        Index("ix_friend_edges_requester_status", "requester_user_id", "status"),
        Index("ix_friend_edges_recipient_status", "recipient_user_id", "status"),
    )


class Notification(Base):
    """In-app notification record. Persisted before any push delivery."""

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(
        Text, default=NotificationCategory.general.value, nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    priority: Mapped[str] = mapped_column(
        Text, default=NotificationPriority.normal.value, nullable=False
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("length(title) <= 100", name="ck_notifications_title_length"),
        CheckConstraint("length(body) <= 500", name="ck_notifications_body_length"),
        CheckConstraint(
            _in_values("category", NotificationCategory), name="ck_notifications_category"
        ),
        CheckConstraint(
            _in_values("priority", NotificationPriority), name="ck_notifications_priority"
        ),
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_expires_at", "expires_at"),
    )


class PushSubscription(Base):
    """A browser push endpoint registered by a user."""

    __tablename__ = "push_subscriptions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh_key: Mapped[str] = mapped_column(Text, nullable=False)
    auth_key: Mapped[str] = mapped_column(Text, nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_push_subscriptions_user_active", "user_id", "is_active"),)


class CalendarConnection(Base):
    """A user's link to an external calendar provider.

    Tokens are stored encrypted; see freefor.services.crypto.
    """

    __tablename__ = "calendar_connections"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_name: Mapped[str] = mapped_column(Text, nullable=False)
    connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    calendar_ids: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    connected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "provider_name", name="uq_calendar_connections_user_provider"),
    )
