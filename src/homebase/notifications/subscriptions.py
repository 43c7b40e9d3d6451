"""Push subscription registry (one row per device endpoint)."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.db.models import PushSubscription

logger = structlog.get_logger()


async def register(
    db: AsyncSession,
    user_id: str,
    endpoint: str,
    p256dh: str,
    auth: str,
    user_agent: str | None = None,
) -> PushSubscription:
    """Upsert a subscription keyed by endpoint.

    Re-registering an endpoint refreshes its keys (and owner, if the device
    changed hands) instead of adding a second row. A single
    INSERT ... ON CONFLICT keeps concurrent subscribes for one endpoint safe.
    """
    now = datetime.now(timezone.utc)
    insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = insert(PushSubscription).values(
        id=str(uuid.uuid4()),
        user_id=user_id,
        endpoint=endpoint,
        p256dh=p256dh,
        auth=auth,
        user_agent=user_agent,
        created_at=now,
        updated_at=now,
    )
    refresh = {
        "user_id": stmt.excluded.user_id,
        "p256dh": stmt.excluded.p256dh,
        "auth": stmt.excluded.auth,
        "updated_at": stmt.excluded.updated_at,
    }
    if user_agent is not None:
        refresh["user_agent"] = stmt.excluded.user_agent
    stmt = stmt.on_conflict_do_update(index_elements=["endpoint"], set_=refresh).returning(PushSubscription.id)
    subscription_id = (await db.execute(stmt)).scalar_one()

    result = await db.execute(
        select(PushSubscription)
        .where(PushSubscription.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    logger.info("push_subscription_registered", user_id=user_id)
    return result.scalar_one()


async def unregister(db: AsyncSession, endpoint: str, user_id: str | None = None) -> bool:
    """Delete the subscription for an endpoint. Returns True if one existed.

    With ``user_id`` only that user's subscription is removed.
    """
    stmt = delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
    if user_id is not None:
        stmt = stmt.where(PushSubscription.user_id == user_id)
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount > 0


async def list_for(db: AsyncSession, user_id: str) -> list[PushSubscription]:
    """All registered devices for a user, oldest first."""
    result = await db.execute(
        select(PushSubscription)
        .where(PushSubscription.user_id == user_id)
        .order_by(PushSubscription.created_at)
    )
    return list(result.scalars().all())


async def delete_endpoints(db: AsyncSession, endpoints: Iterable[str]) -> int:
    """Remove subscriptions whose endpoints reported a permanent failure."""
    endpoints = list(endpoints)
    if not endpoints:
        return 0
    result = await db.execute(delete(PushSubscription).where(PushSubscription.endpoint.in_(endpoints)))
    await db.flush()
    if result.rowcount:
        logger.info("push_subscriptions_removed", count=result.rowcount)
    return result.rowcount


async def count_subscriptions(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(PushSubscription))
    return result.scalar_one()
