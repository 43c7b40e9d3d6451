"""Unit tests for the realtime inbox announce."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from homebase.db.models import Notification
from homebase.notifications.realtime import publish_notification, user_channel


def _notification() -> Notification:
    return Notification(
        id="n-1",
        user_id="u-1",
        type="message",
        title="Alice",
        body="Hi",
        action_url="/messages",
        notification_metadata={"v": 1},
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
async def test_publishes_to_user_channel():
    redis = AsyncMock()
    assert await publish_notification(redis, _notification()) is True

    channel, raw = redis.publish.await_args.args
    assert channel == user_channel("u-1") == "notifications:user:u-1"
    message = json.loads(raw)
    assert message["event"] == "notification"
    assert message["data"]["id"] == "n-1"
    assert message["data"]["actionUrl"] == "/messages"


@pytest.mark.asyncio
async def test_without_redis_is_a_noop():
    assert await publish_notification(None, _notification()) is False


@pytest.mark.asyncio
async def test_publish_failure_is_swallowed():
    redis = AsyncMock()
    redis.publish.side_effect = ConnectionError("redis down")
    assert await publish_notification(redis, _notification()) is False
