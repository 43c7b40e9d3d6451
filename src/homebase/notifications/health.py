"""Delivery health report.

Pure read-side aggregation over the outbox, the push registry, preferences
and the last day of notifications. Never writes, safe to poll.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from homebase.config import Settings
from homebase.db.models import Notification, NotificationPreference, OutboxEntry
from homebase.notifications.outbox import FAILED, PENDING, SENT
from homebase.notifications.subscriptions import count_subscriptions

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class _Report(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusCounts(_Report):
    pending: int = 0
    sent: int = 0
    failed: int = 0


class ChannelCounts(_Report):
    push: StatusCounts = StatusCounts()
    email: StatusCounts = StatusCounts()


class OutboxSummary(StatusCounts):
    by_channel: ChannelCounts = ChannelCounts()
    high_attempts: int = 0
    window: int = 0


class PushSubscriptionSummary(_Report):
    total: int = 0


class PreferenceSummary(_Report):
    total: int = 0
    push_enabled: int = 0
    email_enabled: int = 0
    push_opt_in_rate: float | None = None
    email_opt_in_rate: float | None = None


class DeliveryCounts(_Report):
    inapp: int = 0
    push: int = 0
    email: int = 0


class RecentActivity(_Report):
    last24h: int = 0
    delivery_rates: DeliveryCounts = DeliveryCounts()


class VapidConfiguration(_Report):
    public_key: bool
    private_key: bool
    subject: bool


class ConfigurationSummary(_Report):
    vapid: VapidConfiguration
    email: bool
    email_provider: str


class HealthReport(_Report):
    status: HealthStatus = "healthy"
    timestamp: datetime
    outbox: OutboxSummary
    push_subscriptions: PushSubscriptionSummary
    preferences: PreferenceSummary
    recent_activity: RecentActivity
    configuration: ConfigurationSummary
    warnings: list[str] = []


def _rate(part: int, total: int) -> float | None:
    return round(part / total, 4) if total else None


def _count_true(column: ColumnElement[bool]) -> ColumnElement[int]:
    return func.coalesce(func.sum(case((column.is_(True), 1), else_=0)), 0)


async def _outbox_summary(db: AsyncSession, settings: Settings) -> OutboxSummary:
    recent = (
        select(OutboxEntry.channel, OutboxEntry.status, OutboxEntry.attempts)
        .order_by(OutboxEntry.created_at.desc())
        .limit(settings.health_outbox_window)
        .subquery()
    )
    rows = await db.execute(
        select(recent.c.channel, recent.c.status, func.count()).group_by(recent.c.channel, recent.c.status)
    )

    totals = {PENDING: 0, SENT: 0, FAILED: 0}
    by_channel: dict[str, dict[str, int]] = {"push": {}, "email": {}}
    window = 0
    for channel, status, count in rows.all():
        window += count
        if status in totals:
            totals[status] += count
        if channel in by_channel:
            by_channel[channel][status] = count

    high = await db.execute(
        select(func.count()).select_from(recent).where(recent.c.attempts >= settings.health_chronic_attempts)
    )
    return OutboxSummary(
        pending=totals[PENDING],
        sent=totals[SENT],
        failed=totals[FAILED],
        by_channel=ChannelCounts(
            push=StatusCounts(**{k: v for k, v in by_channel["push"].items() if k in totals}),
            email=StatusCounts(**{k: v for k, v in by_channel["email"].items() if k in totals}),
        ),
        high_attempts=high.scalar_one(),
        window=window,
    )


async def _preference_summary(db: AsyncSession) -> PreferenceSummary:
    result = await db.execute(
        select(
            func.count(),
            _count_true(NotificationPreference.channel_push),
            _count_true(NotificationPreference.channel_email),
        )
    )
    total, push_enabled, email_enabled = result.one()
    return PreferenceSummary(
        total=total,
        push_enabled=push_enabled,
        email_enabled=email_enabled,
        push_opt_in_rate=_rate(push_enabled, total),
        email_opt_in_rate=_rate(email_enabled, total),
    )


async def _recent_activity(db: AsyncSession, since: datetime) -> RecentActivity:
    result = await db.execute(
        select(
            func.count(),
            _count_true(Notification.delivered_inapp),
            _count_true(Notification.delivered_push),
            _count_true(Notification.delivered_email),
        ).where(Notification.created_at >= since)
    )
    total, inapp, push, email = result.one()
    return RecentActivity(
        last24h=total,
        delivery_rates=DeliveryCounts(inapp=inapp, push=push, email=email),
    )


async def health_check(db: AsyncSession, settings: Settings, now: datetime | None = None) -> HealthReport:
    """Summarize delivery state and derive an overall status.

    ``degraded`` when VAPID keys or the email credentials are missing, when
    the pending backlog is large, or when many entries keep failing.
    """
    now = now or datetime.now(timezone.utc)
    outbox = await _outbox_summary(db, settings)
    report = HealthReport(
        timestamp=now,
        outbox=outbox,
        push_subscriptions=PushSubscriptionSummary(total=await count_subscriptions(db)),
        preferences=await _preference_summary(db),
        recent_activity=await _recent_activity(db, now - timedelta(hours=24)),
        configuration=ConfigurationSummary(
            vapid=VapidConfiguration(
                public_key=bool(settings.vapid_public_key),
                private_key=bool(settings.vapid_private_key),
                subject=bool(settings.vapid_subject),
            ),
            email=settings.email_configured,
            email_provider=settings.email_provider,
        ),
    )

    warnings: list[str] = []
    degraded = False
    if outbox.pending > settings.health_pending_threshold:
        warnings.append(f"High number of pending notifications: {outbox.pending}")
        degraded = True
    if outbox.high_attempts > settings.health_high_attempts_threshold:
        warnings.append(
            f"{outbox.high_attempts} notifications with {settings.health_chronic_attempts}+ failed attempts"
        )
        degraded = True
    if not settings.vapid_configured:
        warnings.append("VAPID keys not fully configured")
        degraded = True
    if not settings.email_configured:
        warnings.append(f"Email provider '{settings.email_provider}' not configured")
        degraded = True

    report.warnings = warnings
    report.status = "degraded" if degraded else "healthy"
    return report
