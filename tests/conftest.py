"""Shared test fixtures.

Database-backed tests run against a throwaway SQLite file per test (through
aiosqlite). Push services and the email provider are faked at the transport
level so the real senders run end to end.
"""

from __future__ import annotations

import base64
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from homebase.auth.jwt import create_access_token
from homebase.config import Settings, get_settings
from homebase.database import get_session
from homebase.db import models  # noqa: F401
from homebase.db.base import Base
from homebase.db.models import Profile, PushSubscription
from homebase.dependencies import get_dispatcher, get_session_factory_dep
from homebase.email.service import BaseEmailProvider, EmailService
from homebase.main import create_app
from homebase.notifications.dispatcher import Dispatcher
from homebase.notifications.push import PushSender

JWT_SECRET = "test-jwt-secret-with-enough-entropy-1234"
SERVICE_KEY = "test-service-role-key"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


@pytest.fixture(scope="session")
def vapid_keys() -> tuple[str, str]:
    """A fresh P-256 key pair in the raw base64url form browsers use."""
    key = ec.generate_private_key(ec.SECP256R1())
    private = _b64url(key.private_numbers().private_value.to_bytes(32, "big"))
    public = _b64url(
        key.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint,
        )
    )
    return public, private


@pytest.fixture
def settings(tmp_path, vapid_keys: tuple[str, str]) -> Settings:
    public, private = vapid_keys
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        redis_url="",
        log_format="console",
        auth_jwt_secret=JWT_SECRET,
        service_role_key=SERVICE_KEY,
        vapid_public_key=public,
        vapid_private_key=private,
        resend_api_key="re_test_key",
        app_url="https://app.homebase.test",
    )


# --- Database ---


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(settings.database_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A direct session for arranging data and asserting on it."""
    async with session_factory() as session:
        yield session


# --- Channel fakes ---


class FakePushService:
    """httpx handler standing in for every push service endpoint.

    ``responses`` maps an endpoint to a status code, an exception to raise,
    or a list of those consumed one request at a time. Unknown endpoints
    answer 201.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        planned = self.responses.get(str(request.url), 201)
        if isinstance(planned, list):
            planned = planned.pop(0) if len(planned) > 1 else planned[0]
        if isinstance(planned, Exception):
            raise planned
        return httpx.Response(planned, request=request)

    def hits(self, endpoint: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == endpoint)


class FakeEmailProvider(BaseEmailProvider):
    name = "fake"

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.error: Exception | None = None

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to_email, "subject": subject, "html": html_body, "text": text_body})


@pytest.fixture
def push_service() -> FakePushService:
    return FakePushService()


@pytest_asyncio.fixture
async def push_sender(settings: Settings, push_service: FakePushService) -> AsyncGenerator[PushSender, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(push_service)) as client:
        yield PushSender(settings, client=client)


@pytest.fixture
def email_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def email_service(settings: Settings, email_provider: FakeEmailProvider) -> EmailService:
    return EmailService(settings, provider=email_provider)


@pytest.fixture
def fake_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def dispatcher(
    settings: Settings,
    push_sender: PushSender,
    email_service: EmailService,
    fake_redis: AsyncMock,
) -> Dispatcher:
    return Dispatcher(settings, push_sender=push_sender, email_service=email_service, redis=fake_redis)


# --- Data helpers ---


@dataclass
class Recipient:
    user_id: str
    profile: Profile
    subscriptions: list[PushSubscription] = field(default_factory=list)


async def _create_recipient(
    db: AsyncSession,
    user_id: str,
    *,
    role: str = "homeowner",
    email: str | None = "user@example.com",
    devices: int = 0,
) -> Recipient:
    """Insert a profile (and optionally push devices) and commit."""
    profile = Profile(user_id=user_id, role=role, full_name=f"User {user_id}", email=email)
    db.add(profile)
    subs = []
    for i in range(devices):
        sub = PushSubscription(
            user_id=user_id,
            endpoint=f"https://push.example.com/send/{user_id}-{i}",
            p256dh=f"p256dh-{i}",
            auth=f"auth-{i}",
        )
        db.add(sub)
        subs.append(sub)
    await db.commit()
    return Recipient(user_id=user_id, profile=profile, subscriptions=subs)


@pytest.fixture
def make_recipient(db: AsyncSession):
    """Async factory: ``await make_recipient("user-1", devices=2)``."""

    async def _make(user_id: str, **kwargs: Any) -> Recipient:
        return await _create_recipient(db, user_id, **kwargs)

    return _make


# --- HTTP ---


@pytest_asyncio.fixture
async def client(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: Dispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with DB, settings and senders swapped in."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
        yield session_factory

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_session_factory_dep] = _factory
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def service_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {SERVICE_KEY}"}


@pytest.fixture
def user_headers(settings: Settings):
    """Build Authorization headers for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, settings)}"}

    return _headers
