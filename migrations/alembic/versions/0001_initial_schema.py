"""Initial schema - users, availability, friends, notifications, push, calendars

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _user_fk(column: str) -> sa.Column:
    return sa.Column(
        column,
        sa.UUID(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # users table
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("preferred_games", sa.JSON(), server_default="[]", nullable=False),
        sa.Column("platforms", sa.JSON(), server_default="[]", nullable=False),
        sa.Column("timezone", sa.Text(), server_default="UTC", nullable=False),
        sa.Column("region", sa.Text(), nullable=True),
        sa.Column("is_public", sa.Boolean(), server_default="true", nullable=False),
        sa.Column(
            "last_active_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint(
            "username IS NULL OR length(username) BETWEEN 3 AND 30",
            name="ck_users_username_length",
        ),
        sa.CheckConstraint("bio IS NULL OR length(bio) <= 500", name="ck_users_bio_length"),
    )
    op.create_index("ix_users_public_activity", "users", ["is_public", "last_active_at"])

    # ==========================================================================
    # availability_entries table
    # ==========================================================================
    op.create_table(
        "availability_entries",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk("owner_user_id"),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("start_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("recurrence_frequency", sa.Text(), nullable=True),
        sa.Column("recurrence_interval", sa.Integer(), nullable=True),
        sa.Column("recurrence_days_of_week", sa.JSON(), nullable=True),
        sa.Column("recurrence_until", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("origin", sa.Text(), server_default="manual", nullable=False),
        sa.Column("external_event_id", sa.Text(), nullable=True),
        sa.Column("provider_name", sa.Text(), nullable=True),
        sa.Column("visible", sa.Boolean(), server_default="true", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("start_at < end_at", name="ck_availability_entries_range"),
        sa.CheckConstraint(
            "kind IN ('available', 'busy', 'override')", name="ck_availability_entries_kind"
        ),
        sa.CheckConstraint(
            "origin IN ('manual', 'externally_synced')", name="ck_availability_entries_origin"
        ),
        sa.CheckConstraint(
            "recurrence_interval IS NULL OR recurrence_interval >= 1",
            name="ck_availability_entries_interval",
        ),
        sa.CheckConstraint(
            "origin = 'manual' OR (external_event_id IS NOT NULL AND provider_name IS NOT NULL)",
            name="ck_availability_entries_external_ref",
        ),
        sa.UniqueConstraint(
            "owner_user_id",
            "provider_name",
            "external_event_id",
            name="uq_availability_entries_external_event",
        ),
    )
    op.create_index(
        "ix_availability_entries_owner_start", "availability_entries", ["owner_user_id", "start_at"]
    )

    # ==========================================================================
    # friend_edges table
    # ==========================================================================
    op.create_table(
        "friend_edges",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk("requester_user_id"),
        _user_fk("recipient_user_id"),
        sa.Column("pair_key", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("accepted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pair_key", name="uq_friend_edges_pair_key"),
        sa.CheckConstraint("requester_user_id <> recipient_user_id", name="ck_friend_edges_not_self"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'blocked')",
            name="ck_friend_edges_status",
        ),
    )
    op.create_index(
        "ix_friend_edges_requester_status", "friend_edges", ["requester_user_id", "status"]
    )
    op.create_index(
        "ix_friend_edges_recipient_status", "friend_edges", ["recipient_user_id", "status"]
    )

    # ==========================================================================
    # notifications table
    # ==========================================================================
    op.create_table(
        "notifications",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk("user_id"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), server_default="general", nullable=False),
        sa.Column("payload", sa.JSON(), server_default="{}", nullable=False),
        sa.Column("priority", sa.Text(), server_default="normal", nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("length(title) <= 100", name="ck_notifications_title_length"),
        sa.CheckConstraint("length(body) <= 500", name="ck_notifications_body_length"),
        sa.CheckConstraint(
            "category IN ('general', 'friend_request', 'friend_accepted', 'game_invitation', "
            "'availability_match', 'system', 'test')",
            name="ck_notifications_category",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'normal', 'high')", name="ck_notifications_priority"
        ),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_expires_at", "notifications", ["expires_at"])

    # ==========================================================================
    # push_subscriptions table
    # ==========================================================================
    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk("user_id"),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("p256dh_key", sa.Text(), nullable=False),
        sa.Column("auth_key", sa.Text(), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("last_used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("endpoint", name="uq_push_subscriptions_endpoint"),
    )
    op.create_index(
        "ix_push_subscriptions_user_active", "push_subscriptions", ["user_id", "is_active"]
    )

    # ==========================================================================
    # calendar_connections table
    # ==========================================================================
    op.create_table(
        "calendar_connections",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk("user_id"),
        sa.Column("provider_name", sa.Text(), nullable=False),
        sa.Column("connected", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("access_token_encrypted", sa.Text(), nullable=True),
        sa.Column("refresh_token_encrypted", sa.Text(), nullable=True),
        sa.Column("calendar_ids", sa.JSON(), server_default="[]", nullable=False),
        sa.Column("connected_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "provider_name", name="uq_calendar_connections_user_provider"
        ),
    )


def downgrade() -> None:
    op.drop_table("calendar_connections")
    op.drop_table("push_subscriptions")
    op.drop_table("notifications")
    op.drop_table("friend_edges")
    op.drop_table("availability_entries")
    op.drop_table("users")
