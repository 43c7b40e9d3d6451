"""Delivery outbox: one entry per (notification, channel).

State machine::

    pending --(send ok)----------------------> sent     (terminal)
    pending --(send failed, budget left)-----> pending  (next_retry_at set)
    pending --(send failed, budget spent)----> failed   (terminal)

``attempts`` is incremented on every send attempt and never decreases.
Terminal entries are never resurrected; touching one raises OutboxStateError.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.db.models import OutboxEntry
from homebase.notifications.errors import OutboxStateError

OUTBOX_CHANNELS = ("push", "email")

PENDING = "pending"
SENT = "sent"
FAILED = "failed"
STATUSES = (PENDING, SENT, FAILED)


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _ensure_pending(entry: OutboxEntry) -> None:
    if entry.status != PENDING:
        msg = f"Outbox entry {entry.id} is {entry.status}; only pending entries can be attempted"
        raise OutboxStateError(msg)


def truncate_error(error: str, max_length: int = 500) -> str:
    return error if len(error) <= max_length else error[: max_length - 3] + "..."


def retry_delay(attempts: int, base_minutes: int = 5) -> timedelta:
    """Backoff after the ``attempts``-th failure: 5, 10, 20, 40... minutes."""
    return timedelta(minutes=base_minutes * 2 ** max(attempts - 1, 0))


async def create_entry(
    db: AsyncSession,
    notification_id: str,
    channel: str,
    now: datetime | None = None,
) -> OutboxEntry:
    """Queue a pending entry for one channel of a notification."""
    if channel not in OUTBOX_CHANNELS:
        msg = f"Invalid outbox channel: {channel}. Must be one of {OUTBOX_CHANNELS}"
        raise ValueError(msg)
    ts = _now(now)
    entry = OutboxEntry(
        notification_id=notification_id,
        channel=channel,
        status=PENDING,
        attempts=0,
        created_at=ts,
        updated_at=ts,
    )
    db.add(entry)
    return entry


def mark_sent(entry: OutboxEntry, now: datetime | None = None) -> None:
    _ensure_pending(entry)
    ts = _now(now)
    entry.attempts += 1
    entry.status = SENT
    entry.last_attempt_at = ts
    entry.next_retry_at = None
    entry.updated_at = ts


def mark_failed(
    entry: OutboxEntry,
    error: str,
    now: datetime | None = None,
    max_error_length: int = 500,
) -> None:
    """Record a failed attempt and close the entry."""
    _ensure_pending(entry)
    ts = _now(now)
    entry.attempts += 1
    entry.status = FAILED
    entry.last_error = truncate_error(error, max_error_length)
    entry.last_attempt_at = ts
    entry.next_retry_at = None
    entry.updated_at = ts


def schedule_retry(
    entry: OutboxEntry,
    error: str,
    max_attempts: int,
    base_minutes: int = 5,
    now: datetime | None = None,
    max_error_length: int = 500,
) -> None:
    """Record a failed attempt, leaving the entry pending while budget remains."""
    if entry.attempts + 1 >= max_attempts:
        mark_failed(entry, error, now, max_error_length)
        return
    _ensure_pending(entry)
    ts = _now(now)
    entry.attempts += 1
    entry.last_error = truncate_error(error, max_error_length)
    entry.last_attempt_at = ts
    entry.next_retry_at = ts + retry_delay(entry.attempts, base_minutes)
    entry.updated_at = ts


async def list_for_notification(db: AsyncSession, notification_id: str) -> list[OutboxEntry]:
    result = await db.execute(
        select(OutboxEntry)
        .where(OutboxEntry.notification_id == notification_id)
        .order_by(OutboxEntry.channel)
    )
    return list(result.scalars().all())


async def due_entries(
    db: AsyncSession,
    max_attempts: int,
    stale_after: timedelta,
    now: datetime | None = None,
    notification_id: str | None = None,
    limit: int = 200,
) -> list[OutboxEntry]:
    """Pending entries the retry worker should attempt now.

    Either a scheduled retry has come due, or the entry was never attempted
    and has sat pending longer than ``stale_after`` (its dispatch call died
    before recording an outcome).
    """
    ts = _now(now)
    query = select(OutboxEntry).where(
        OutboxEntry.status == PENDING,
        OutboxEntry.attempts < max_attempts,
    )
    if notification_id is not None:
        query = query.where(OutboxEntry.notification_id == notification_id)
    else:
        query = query.where(
            or_(
                OutboxEntry.next_retry_at <= ts,
                and_(
                    OutboxEntry.next_retry_at.is_(None),
                    OutboxEntry.created_at <= ts - stale_after,
                ),
            )
        )
    # SKIP LOCKED keeps concurrent PostgreSQL drains off each other's rows
    query = query.order_by(OutboxEntry.created_at).limit(limit).with_for_update(skip_locked=True)
    result = await db.execute(query.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def claim_entry(db: AsyncSession, entry: OutboxEntry, now: datetime | None = None) -> bool:
    """Take an entry for one attempt. False when another drain got there first.

    The update only matches while the row still has the status and attempt
    count this session read, so of two racing drains exactly one wins.
    """
    ts = _now(now)
    result = await db.execute(
        update(OutboxEntry)
        .where(
            OutboxEntry.id == entry.id,
            OutboxEntry.status == PENDING,
            OutboxEntry.attempts == entry.attempts,
        )
        .values(updated_at=ts)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
