"""Per-user notification preference store.

A missing row means the user never changed anything: every channel is on.
The dispatcher only reads preferences; writes come from the user's settings
page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.db.models import NotificationPreference
from homebase.notifications.metadata import CATEGORIES, category_for
from homebase.notifications.schemas import ForceChannels

logger = structlog.get_logger()

CHANNELS = ("inapp", "push", "email")


@dataclass(frozen=True)
class Preferences:
    """Snapshot of a user's preferences."""

    user_id: str
    channel_inapp: bool = True
    channel_push: bool = True
    channel_email: bool = True
    categories: dict[str, bool] = field(default_factory=dict)
    stored: bool = False

    def allows(self, channel: str, category: str) -> bool:
        """Global channel flag AND the per-category override (default on)."""
        if not getattr(self, f"channel_{channel}"):
            return False
        return bool(self.categories.get(f"{category}_{channel}", True))


@dataclass(frozen=True)
class ResolvedChannels:
    inapp: bool
    push: bool
    email: bool

    def enabled_outbox_channels(self) -> list[str]:
        return [c for c in ("push", "email") if getattr(self, c)]


def resolve_channels(
    prefs: Preferences,
    event_type: str,
    force: ForceChannels | None = None,
) -> ResolvedChannels:
    """Decide which channels an event goes out on.

    An explicit ``True``/``False`` in ``force`` overrides the stored
    preference for that channel; ``None`` defers to the preference.
    """
    category = category_for(event_type)
    resolved: dict[str, bool] = {}
    for channel in CHANNELS:
        override = getattr(force, channel) if force is not None else None
        resolved[channel] = override if override is not None else prefs.allows(channel, category)
    return ResolvedChannels(**resolved)


def _validate_channel(channel: str) -> None:
    if channel not in CHANNELS:
        msg = f"Invalid channel: {channel}. Must be one of {CHANNELS}"
        raise ValueError(msg)


def _to_preferences(row: NotificationPreference) -> Preferences:
    return Preferences(
        user_id=row.user_id,
        channel_inapp=row.channel_inapp,
        channel_push=row.channel_push,
        channel_email=row.channel_email,
        categories={k: bool(v) for k, v in (row.categories or {}).items()},
        stored=True,
    )


async def get_preferences(db: AsyncSession, user_id: str) -> Preferences:
    """Get a user's preferences, falling back to all-on defaults."""
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return Preferences(user_id=user_id)
    return _to_preferences(row)


async def _get_or_create_row(db: AsyncSession, user_id: str) -> NotificationPreference:
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = NotificationPreference(
            user_id=user_id,
            channel_inapp=True,
            channel_push=True,
            channel_email=True,
            categories={},
        )
        db.add(row)
    return row


async def set_preference(db: AsyncSession, user_id: str, channel: str, enabled: bool) -> Preferences:
    """Set a global channel flag for a user."""
    _validate_channel(channel)
    row = await _get_or_create_row(db, user_id)
    setattr(row, f"channel_{channel}", enabled)
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("preference_updated", user_id=user_id, channel=channel, enabled=enabled)
    return _to_preferences(row)


async def set_category_preference(
    db: AsyncSession,
    user_id: str,
    category: str,
    channel: str,
    enabled: bool,
) -> Preferences:
    """Override one channel for one event category (e.g. no email for messages)."""
    _validate_channel(channel)
    if category not in CATEGORIES:
        msg = f"Invalid category: {category}. Must be one of {CATEGORIES}"
        raise ValueError(msg)
    row = await _get_or_create_row(db, user_id)
    # Reassign so the JSON column is flagged dirty
    row.categories = {**(row.categories or {}), f"{category}_{channel}": enabled}
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info(
        "category_preference_updated",
        user_id=user_id,
        category=category,
        channel=channel,
        enabled=enabled,
    )
    return _to_preferences(row)
