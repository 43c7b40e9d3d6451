"""Integration: delivery health report."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from homebase.db.models import Notification, NotificationPreference, OutboxEntry
from homebase.notifications.health import health_check

NOW = datetime.now(timezone.utc)


def _notification(user_id: str, created_at: datetime, **delivered) -> Notification:
    return Notification(
        user_id=user_id,
        type="message",
        title="t",
        body="b",
        created_at=created_at,
        **delivered,
    )


def _entry(notification: Notification, channel: str, status: str, attempts: int = 0) -> OutboxEntry:
    return OutboxEntry(
        notification=notification,
        channel=channel,
        status=status,
        attempts=attempts,
        created_at=NOW,
    )


class TestHealthReport:
    @pytest.mark.asyncio
    async def test_empty_system_is_healthy(self, db, settings):
        report = await health_check(db, settings, now=NOW)

        assert report.status == "healthy"
        assert report.warnings == []
        assert report.outbox.window == 0
        assert report.preferences.push_opt_in_rate is None
        assert report.configuration.vapid.public_key is True

    @pytest.mark.asyncio
    async def test_counts_by_channel_and_status(self, db, settings):
        n1 = _notification("u1", NOW, delivered_inapp=True, delivered_push=True)
        n2 = _notification("u2", NOW, delivered_inapp=True, delivered_email=True)
        old = _notification("u3", NOW - timedelta(days=2), delivered_inapp=True)
        db.add_all(
            [
                n1,
                n2,
                old,
                _entry(n1, "push", "sent", 1),
                _entry(n1, "email", "failed", 3),
                _entry(n2, "push", "pending"),
                _entry(n2, "email", "sent", 1),
            ]
        )
        db.add_all(
            [
                NotificationPreference(user_id="u1", channel_push=True, channel_email=False, categories={}),
                NotificationPreference(user_id="u2", channel_push=False, channel_email=False, categories={}),
            ]
        )
        await db.commit()

        report = await health_check(db, settings, now=NOW)

        assert (report.outbox.pending, report.outbox.sent, report.outbox.failed) == (1, 2, 1)
        assert report.outbox.by_channel.push.sent == 1
        assert report.outbox.by_channel.push.pending == 1
        assert report.outbox.by_channel.email.failed == 1
        assert report.outbox.high_attempts == 1
        assert report.outbox.window == 4
        assert report.preferences.total == 2
        assert report.preferences.push_enabled == 1
        assert report.preferences.push_opt_in_rate == 0.5
        assert report.preferences.email_opt_in_rate == 0.0
        assert report.recent_activity.last24h == 2
        assert report.recent_activity.delivery_rates.inapp == 2
        assert report.recent_activity.delivery_rates.push == 1
        assert report.recent_activity.delivery_rates.email == 1

    @pytest.mark.asyncio
    async def test_missing_vapid_keys_degrade(self, db, settings):
        unconfigured = settings.model_copy(update={"vapid_private_key": ""})

        report = await health_check(db, unconfigured, now=NOW)

        assert report.status == "degraded"
        assert "VAPID keys not fully configured" in report.warnings
        assert report.configuration.vapid.private_key is False

    @pytest.mark.asyncio
    async def test_missing_email_credentials_degrade(self, db, settings):
        unconfigured = settings.model_copy(update={"resend_api_key": ""})

        report = await health_check(db, unconfigured, now=NOW)

        assert report.status == "degraded"
        assert report.configuration.email is False
        assert any("Email provider" in w for w in report.warnings)

    @pytest.mark.asyncio
    async def test_pending_backlog_degrades(self, db, settings):
        strict = settings.model_copy(update={"health_pending_threshold": 2})
        for i in range(3):
            other = _notification(f"u{i}", NOW)
            db.add_all([other, _entry(other, "push", "pending")])
        await db.commit()

        report = await health_check(db, strict, now=NOW)

        assert report.status == "degraded"
        assert report.warnings == ["High number of pending notifications: 3"]

    @pytest.mark.asyncio
    async def test_chronic_failures_degrade(self, db, settings):
        strict = settings.model_copy(update={"health_high_attempts_threshold": 1})
        for i in range(2):
            n = _notification(f"u{i}", NOW)
            db.add_all([n, _entry(n, "email", "failed", attempts=4)])
        await db.commit()

        report = await health_check(db, strict, now=NOW)

        assert report.status == "degraded"
        assert report.warnings == ["2 notifications with 3+ failed attempts"]

    @pytest.mark.asyncio
    async def test_camel_case_serialization(self, db, settings):
        report = await health_check(db, settings, now=NOW)

        data = report.model_dump(mode="json", by_alias=True)

        assert set(data) >= {"status", "outbox", "pushSubscriptions", "recentActivity", "configuration"}
        assert "highAttempts" in data["outbox"]
        assert "byChannel" in data["outbox"]
        assert "emailProvider" in data["configuration"]
