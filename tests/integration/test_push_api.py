"""Integration: push subscription endpoints and registry."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from homebase.db.models import PushSubscription
from homebase.notifications.subscriptions import list_for, register, unregister

ENDPOINT = "https://fcm.googleapis.com/fcm/send/abc123"


def _subscription(endpoint: str = ENDPOINT, p256dh: str = "BPk1", auth: str = "auth1") -> dict:
    return {"endpoint": endpoint, "keys": {"p256dh": p256dh, "auth": auth}, "expirationTime": None}


async def _count(db) -> int:
    result = await db.execute(select(func.count()).select_from(PushSubscription))
    return result.scalar_one()


class TestRegistry:
    @pytest.mark.asyncio
    async def test_register_is_an_upsert(self, db):
        first = await register(db, "u1", ENDPOINT, "key-a", "auth-a")
        second = await register(db, "u1", ENDPOINT, "key-b", "auth-b", user_agent="Firefox")
        await db.commit()

        assert first.id == second.id
        assert await _count(db) == 1
        assert second.p256dh == "key-b"
        assert second.user_agent == "Firefox"

    @pytest.mark.asyncio
    async def test_endpoint_changes_hands(self, db):
        await register(db, "u1", ENDPOINT, "k", "a")
        await register(db, "u2", ENDPOINT, "k2", "a2")
        await db.commit()

        assert await list_for(db, "u1") == []
        assert [s.endpoint for s in await list_for(db, "u2")] == [ENDPOINT]

    @pytest.mark.asyncio
    async def test_unregister_scoped_to_owner(self, db):
        await register(db, "u1", ENDPOINT, "k", "a")
        await db.commit()

        assert await unregister(db, ENDPOINT, user_id="u2") is False
        assert await unregister(db, ENDPOINT, user_id="u1") is True
        assert await unregister(db, ENDPOINT) is False

    @pytest.mark.asyncio
    async def test_concurrent_register_same_endpoint(self, db, session_factory):
        """A service worker and the page subscribing the same device at once."""

        async def subscribe(p256dh: str) -> str:
            async with session_factory() as session:
                sub = await register(session, "u1", ENDPOINT, p256dh, "auth")
                await session.commit()
                return sub.id

        ids = await asyncio.gather(subscribe("key-a"), subscribe("key-b"))

        assert ids[0] == ids[1]
        assert await _count(db) == 1


class TestPushEndpoints:
    @pytest.mark.asyncio
    async def test_vapid_public_key(self, client, vapid_keys):
        resp = await client.get("/api/v1/push/vapid-public-key")

        assert resp.status_code == 200
        assert resp.json() == {"public_key": vapid_keys[0]}

    @pytest.mark.asyncio
    async def test_subscribe(self, client, db, user_headers):
        headers = {**user_headers("u1"), "User-Agent": "Mozilla/5.0 Test"}

        resp = await client.post("/api/v1/push/subscribe", json=_subscription(), headers=headers)

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        (sub,) = await list_for(db, "u1")
        assert sub.id == resp.json()["subscription_id"]
        assert sub.user_agent == "Mozilla/5.0 Test"

    @pytest.mark.asyncio
    async def test_resubscribe_does_not_duplicate(self, client, db, user_headers):
        headers = user_headers("u1")

        await client.post("/api/v1/push/subscribe", json=_subscription(), headers=headers)
        await client.post("/api/v1/push/subscribe", json=_subscription(p256dh="BPk2"), headers=headers)

        assert await _count(db) == 1

    @pytest.mark.asyncio
    async def test_subscribe_requires_https(self, client, user_headers):
        resp = await client.post(
            "/api/v1/push/subscribe",
            json=_subscription(endpoint="http://insecure.example.com/push"),
            headers=user_headers("u1"),
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_subscribe_requires_auth(self, client):
        resp = await client.post("/api/v1/push/subscribe", json=_subscription())
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unsubscribe_only_own_device(self, client, db, user_headers):
        await client.post("/api/v1/push/subscribe", json=_subscription(), headers=user_headers("u1"))

        resp = await client.post(
            "/api/v1/push/unsubscribe", json={"endpoint": ENDPOINT}, headers=user_headers("u2")
        )
        assert resp.json() == {"success": True, "removed": False}
        assert await _count(db) == 1

        resp = await client.post(
            "/api/v1/push/unsubscribe", json={"endpoint": ENDPOINT}, headers=user_headers("u1")
        )
        assert resp.json() == {"success": True, "removed": True}
        assert await _count(db) == 0
