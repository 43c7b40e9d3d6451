"""Notification delivery tables.

Creates profiles (recipient lookup), notification_preferences,
push_subscriptions, notifications and notification_outbox.

Revision ID: 001_notification_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_notification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_json = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create the notification tables."""
    # --- profiles ---
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("full_name", sa.String(256), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('homeowner', 'provider', 'admin', 'partner')",
            name="ck_profiles_role",
        ),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"])
    op.create_index("ix_profiles_role", "profiles", ["role"])

    # --- notification_preferences ---
    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("channel_inapp", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("channel_push", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("channel_email", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("categories", _json, server_default=sa.text("'{}'"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # --- push_subscriptions ---
    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False, unique=True),
        sa.Column("p256dh", sa.Text(), nullable=False),
        sa.Column("auth", sa.Text(), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("profile_id", sa.String(36), nullable=True),
        sa.Column("role", sa.String(16), nullable=True),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("action_url", sa.String(512), nullable=True),
        sa.Column("metadata", _json, server_default=sa.text("'{}'"), nullable=False),
        sa.Column("channel_inapp", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("channel_push", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("channel_email", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("delivered_inapp", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("delivered_push", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("delivered_email", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index(
        "ix_notifications_user_unread",
        "notifications",
        ["user_id"],
        postgresql_where=sa.text("read_at IS NULL"),
    )

    # --- notification_outbox ---
    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "notification_id",
            sa.String(36),
            sa.ForeignKey("notifications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("channel", sa.String(8), nullable=False),
        sa.Column("status", sa.String(8), server_default="pending", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_error", sa.String(500), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("notification_id", "channel", name="uq_outbox_notification_channel"),
        sa.CheckConstraint("channel IN ('push', 'email')", name="ck_outbox_channel"),
        sa.CheckConstraint("status IN ('pending', 'sent', 'failed')", name="ck_outbox_status"),
        sa.CheckConstraint("attempts >= 0", name="ck_outbox_attempts"),
    )
    op.create_index("ix_notification_outbox_notification_id", "notification_outbox", ["notification_id"])
    op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])
    op.create_index("ix_notification_outbox_created_at", "notification_outbox", ["created_at"])
    op.create_index(
        "ix_notification_outbox_due",
        "notification_outbox",
        ["next_retry_at"],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """Drop the notification tables."""
    op.drop_table("notification_outbox")
    op.drop_table("notifications")
    op.drop_table("push_subscriptions")
    op.drop_table("notification_preferences")
    op.drop_table("profiles")
