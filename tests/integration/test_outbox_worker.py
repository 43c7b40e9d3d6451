"""Integration: the arq job that drains the outbox."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from homebase.db.models import OutboxEntry
from homebase.notifications.outbox import create_entry
from homebase.notifications.preferences import ResolvedChannels
from homebase.notifications.schemas import NotificationEvent
from homebase.notifications.service import create_notification
from homebase.workers import settings as worker


@pytest.fixture
def worker_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(worker, "get_session_factory", lambda: session_factory)
    return session_factory


class TestRetryJob:
    @pytest.mark.asyncio
    async def test_job_drains_and_commits(self, db, dispatcher, worker_sessions, make_recipient):
        await make_recipient("u1")
        event = NotificationEvent(type="payout.paid", user_id="u1", title="Payout sent", body="$120.00")
        notification = await create_notification(db, event, ResolvedChannels(inapp=True, push=False, email=True))
        await create_entry(db, notification.id, "email", datetime.now(timezone.utc) - timedelta(minutes=30))
        await db.commit()

        summary = await worker.retry_outbox({"dispatcher": dispatcher})

        assert summary == {"processed": 1, "succeeded": 1, "failed": 0}
        async with worker_sessions() as fresh:
            status = await fresh.execute(
                select(OutboxEntry.status).where(OutboxEntry.notification_id == notification.id)
            )
            assert status.scalar_one() == "sent"

    @pytest.mark.asyncio
    async def test_job_with_nothing_due(self, dispatcher, worker_sessions):
        summary = await worker.retry_outbox({"dispatcher": dispatcher})
        assert summary == {"processed": 0, "succeeded": 0, "failed": 0}


def test_worker_runs_one_drain_at_a_time():
    assert worker.WorkerSettings.max_jobs == 1
    (job,) = worker.WorkerSettings.cron_jobs
    assert job.unique is True
