"""In-app notification inbox.

The ``notifications`` table is the delivery of record: every dispatched event
gets exactly one row here regardless of what happens on push or email.
Read state is only changed by the owning user.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.db.models import Notification
from homebase.notifications.preferences import ResolvedChannels
from homebase.notifications.schemas import NotificationEvent


async def create_notification(
    db: AsyncSession,
    event: NotificationEvent,
    channels: ResolvedChannels,
) -> Notification:
    """Insert the in-app record for an event and flush it to obtain an id."""
    notification = Notification(
        user_id=event.user_id,
        profile_id=event.profile_id,
        role=event.role,
        type=event.type,
        title=event.title,
        body=event.body,
        action_url=event.action_url,
        notification_metadata=dict(event.metadata),
        channel_inapp=channels.inapp,
        channel_push=channels.push,
        channel_email=channels.email,
        delivered_inapp=False,
        delivered_push=False,
        delivered_email=False,
        created_at=event.created_at,
    )
    db.add(notification)
    await db.flush()
    return notification


async def get_notification(db: AsyncSession, notification_id: str) -> Notification | None:
    result = await db.execute(select(Notification).where(Notification.id == notification_id))
    return result.scalar_one_or_none()


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """Get user's inbox notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page
    visible = (Notification.user_id == user_id, Notification.channel_inapp.is_(True))

    total_result = await db.execute(select(func.count()).select_from(Notification).where(*visible))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*visible)
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(Notification)
        .where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
        .values(read_at=datetime.now(timezone.utc))
    )
    await db.flush()
    if result.rowcount > 0:
        return True
    # Already read still counts as found
    existing = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    return existing.scalar_one() > 0


async def mark_all_as_read(db: AsyncSession, user_id: str) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
    )
    await db.flush()
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.channel_inapp.is_(True),
            Notification.read_at.is_(None),
        )
    )
    return result.scalar_one()
