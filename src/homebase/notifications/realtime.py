"""Announce new in-app notifications on Redis pub/sub for live inbox updates."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from homebase.db.models import Notification

logger = logging.getLogger(__name__)


def user_channel(user_id: str) -> str:
    return f"notifications:user:{user_id}"


def realtime_payload(notification: "Notification") -> dict[str, Any]:
    return {
        "event": "notification",
        "data": {
            "id": notification.id,
            "type": notification.type,
            "title": notification.title,
            "body": notification.body,
            "actionUrl": notification.action_url,
            "metadata": notification.notification_metadata,
            "createdAt": notification.created_at.isoformat() if notification.created_at else None,
            "readAt": None,
        },
    }


async def publish_notification(redis: Any | None, notification: "Notification") -> bool:
    """Publish a flushed notification to its owner's channel.

    Best effort: the inbox query is the source of truth, so a failed publish
    only delays what the user sees until the next refresh.
    """
    if redis is None:
        return False
    try:
        await redis.publish(user_channel(notification.user_id), json.dumps(realtime_payload(notification)))
    except Exception:
        logger.warning(
            "Failed to publish notification %s on %s",
            notification.id,
            user_channel(notification.user_id),
            exc_info=True,
        )
        return False
    return True
