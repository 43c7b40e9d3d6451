"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI

from homebase.config import get_settings
from homebase.database import close_db, init_db
from homebase.health.router import router as health_router
from homebase.middleware import setup_middleware
from homebase.notifications.dispatcher import build_dispatcher
from homebase.notifications.router import router as notifications_router
from homebase.push.router import router as push_router
from homebase.redis_client import close_redis, get_redis_or_none, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    http_client = httpx.AsyncClient(timeout=settings.push_timeout_seconds)
    app.state.dispatcher = build_dispatcher(settings, http_client, redis=get_redis_or_none())
    logger.info(
        "notifications_api_started",
        environment=settings.environment,
        push_configured=settings.vapid_configured,
        email_configured=settings.email_configured,
    )

    yield

    await http_client.aclose()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="HomeBase Notifications API",
        description="Notification dispatch, delivery outbox and push registry for the HomeBase marketplace",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(notifications_router)
    app.include_router(push_router)

    return app


app = create_app()
