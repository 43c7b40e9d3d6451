"""arq worker settings module.

Import path for arq CLI: arq homebase.workers.settings.WorkerSettings
"""

from __future__ import annotations

import httpx
import redis.asyncio as aioredis
import structlog
from arq import cron
from arq.connections import RedisSettings

from homebase.config import get_settings
from homebase.database import close_db, get_session_factory, init_db
from homebase.middleware.logging import setup_logging
from homebase.notifications.dispatcher import Dispatcher, build_dispatcher
from homebase.notifications.retry_worker import drain_outbox

logger = structlog.get_logger()


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis connections on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    ctx["redis"] = redis_client
    ctx["http_client"] = httpx.AsyncClient(timeout=settings.push_timeout_seconds)
    ctx["dispatcher"] = build_dispatcher(settings, ctx["http_client"], redis=redis_client)
    logger.info("outbox_worker_started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    http_client: httpx.AsyncClient | None = ctx.get("http_client")
    if http_client is not None:
        await http_client.aclose()
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("outbox_worker_stopped")


async def retry_outbox(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Periodic task: drain due outbox entries (every minute)."""
    dispatcher: Dispatcher = ctx["dispatcher"]
    async with get_session_factory()() as db:
        try:
            summary = await drain_outbox(db, dispatcher)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("outbox_drain_failed")
            raise
    return summary


class WorkerSettings:
    """arq worker settings for the outbox retry loop."""

    functions = [retry_outbox]
    cron_jobs = [cron(retry_outbox, second=0, unique=True)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = 300
    allow_abort_jobs = True
