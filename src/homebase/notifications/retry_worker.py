"""Outbox drain: re-attempt pending entries whose retry has come due.

Dispatch leaves an entry ``pending`` only when its call died before the
outcome was recorded. Entries picked up here are retried with exponential
backoff until ``outbox_max_attempts`` is spent, then closed as failed.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.db.models import OutboxEntry
from homebase.notifications.dispatcher import Dispatcher
from homebase.notifications.outbox import SENT, claim_entry, due_entries, mark_failed
from homebase.notifications.service import get_notification

logger = structlog.get_logger()


async def drain_outbox(
    db: AsyncSession,
    dispatcher: Dispatcher,
    now: datetime | None = None,
    notification_id: str | None = None,
) -> dict[str, int]:
    """Attempt every due pending entry once. Flushes but never commits.

    With ``notification_id`` the pending entries of that notification are
    attempted immediately, regardless of their schedule.
    """
    settings = dispatcher.settings
    now = now or datetime.now(timezone.utc)
    candidates = await due_entries(
        db,
        max_attempts=settings.outbox_max_attempts,
        stale_after=timedelta(seconds=settings.outbox_stale_after_seconds),
        now=now,
        notification_id=notification_id,
    )

    # Another drain may be working the same rows
    entries = [entry for entry in candidates if await claim_entry(db, entry, now)]
    if len(entries) < len(candidates):
        logger.info("outbox_entries_claimed_elsewhere", skipped=len(candidates) - len(entries))

    by_notification: dict[str, list[OutboxEntry]] = defaultdict(list)
    for entry in entries:
        by_notification[entry.notification_id].append(entry)

    succeeded = failed = 0
    for nid, group in by_notification.items():
        notification = await get_notification(db, nid)
        if notification is None:
            for entry in group:
                mark_failed(entry, "notification not found", now, settings.outbox_error_max_length)
            failed += len(group)
            continue

        outcomes = await dispatcher.deliver(db, notification, group, retry=True)
        sent = sum(1 for o in outcomes if o.status == SENT)
        succeeded += sent
        failed += len(outcomes) - sent

    await db.flush()
    summary = {"processed": len(entries), "succeeded": succeeded, "failed": failed}
    if entries:
        logger.info("outbox_drained", **summary)
    return summary
