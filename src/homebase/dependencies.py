"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homebase.database import get_session_factory as _get_session_factory
from homebase.notifications.dispatcher import Dispatcher


async def get_session_factory_dep() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Yield the session factory for handlers that open one session per recipient."""
    yield _get_session_factory()


def get_dispatcher(request: Request) -> Dispatcher:
    """The dispatcher built once at startup (see ``main.lifespan``)."""
    dispatcher: Dispatcher = request.app.state.dispatcher
    return dispatcher
