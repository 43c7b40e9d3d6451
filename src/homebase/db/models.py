"""ORM models for the notification delivery tables.

Identifiers are string UUIDs so that user and profile ids issued by the
managed auth provider can be stored as-is.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from homebase.db.base import Base, JSONType


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Profiles (read-only here, owned by the marketplace app)
# ---------------------------------------------------------------------------


class Profile(Base):
    """Marketplace profile used to resolve notification recipients."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class NotificationPreference(Base):
    """Per-user channel opt-in flags plus per-category overrides."""

    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    channel_inapp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    channel_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    channel_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    # "<category>_<channel>" -> bool, e.g. {"message_email": false}
    categories: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Push subscriptions
# ---------------------------------------------------------------------------


class PushSubscription(Base):
    """One registered Web Push endpoint (one per device)."""

    __tablename__ = "push_subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# In-app notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """In-app notification record, the delivery of record for every event."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    profile_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    role: Mapped[str | None] = mapped_column(String(16), nullable=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    action_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    notification_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    channel_inapp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    channel_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    channel_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered_inapp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    outbox_entries: Mapped[list[OutboxEntry]] = relationship(
        "OutboxEntry", back_populates="notification", cascade="all, delete-orphan"
    )


# ---------------------------------------------------------------------------
# Delivery outbox
# ---------------------------------------------------------------------------


class OutboxEntry(Base):
    """Delivery attempt record for one (notification, channel) pair."""

    __tablename__ = "notification_outbox"
    __table_args__ = (
        UniqueConstraint("notification_id", "channel", name="uq_outbox_notification_channel"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    notification_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    channel: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(8), nullable=False, default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notification: Mapped[Notification] = relationship("Notification", back_populates="outbox_entries")
