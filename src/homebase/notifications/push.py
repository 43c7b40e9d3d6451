"""Web Push channel sender (VAPID).

Pushes are sent without an encrypted payload: the push wakes the service
worker, which then fetches the latest notification from the API. The
``Topic`` header carries the notification id so that a push service holding
several undelivered pushes for the same notification keeps only one.

Each device is sent to independently and concurrently. Results are
classified per device:

- ``sent``       2xx from the push service
- ``permanent``  404/410, the endpoint is gone; the caller deletes it
- ``transient``  429/5xx/network error, retried immediately (bounded)
- ``rejected``   any other 4xx, not retried and not cleaned up
"""

from __future__ import annotations

import asyncio
import base64
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlsplit

import httpx
import jwt
import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from homebase.config import Settings
from homebase.notifications.errors import PushConfigurationError

logger = structlog.get_logger()

SENT = "sent"
TRANSIENT = "transient"
PERMANENT = "permanent"
REJECTED = "rejected"

_VAPID_TOKEN_TTL_SECONDS = 12 * 60 * 60


class SubscriptionLike(Protocol):
    endpoint: str


@dataclass(frozen=True)
class PushPayload:
    notification_id: str
    title: str
    body: str
    url: str | None = None
    urgency: str = "normal"


@dataclass(frozen=True)
class PushResult:
    endpoint: str
    outcome: str
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1


@dataclass
class PushDeliveryReport:
    results: list[PushResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.outcome == SENT)

    @property
    def failed(self) -> int:
        return len(self.results) - self.sent

    @property
    def ok(self) -> bool:
        """At least one device accepted the push."""
        return self.sent > 0

    @property
    def expired_endpoints(self) -> list[str]:
        return [r.endpoint for r in self.results if r.outcome == PERMANENT]

    def error_summary(self) -> str:
        errors = [f"{r.outcome}: {r.error}" for r in self.results if r.outcome != SENT]
        return "; ".join(errors) or "no push subscriptions"


def classify_status(status_code: int) -> str:
    """Map a push service HTTP status to a delivery outcome."""
    if 200 <= status_code < 300:
        return SENT
    if status_code in (404, 410):
        return PERMANENT
    if status_code == 429 or status_code >= 500:
        return TRANSIENT
    return REJECTED


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded)


def load_vapid_private_key(value: str) -> ec.EllipticCurvePrivateKey:
    """Load a VAPID signing key.

    Accepts the usual raw 32-byte base64url key, a base64url DER/PKCS#8 key,
    or a PEM document.
    """
    value = value.strip()
    try:
        if value.startswith("-----BEGIN"):
            key = serialization.load_pem_private_key(value.encode(), password=None)
        else:
            raw = _b64url_decode(value)
            if len(raw) == 32:
                key = ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())
            else:
                key = serialization.load_der_private_key(raw, password=None)
    except (ValueError, TypeError) as exc:
        msg = f"Invalid VAPID private key: {exc}"
        raise PushConfigurationError(msg) from exc
    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256R1):
        msg = "Invalid VAPID private key: expected a P-256 EC key"
        raise PushConfigurationError(msg)
    return key


class VapidSigner:
    """Builds ``Authorization: vapid t=..., k=...`` headers (RFC 8292)."""

    def __init__(self, public_key: str, private_key: str, subject: str) -> None:
        if not public_key or not private_key:
            msg = "VAPID keys not configured"
            raise PushConfigurationError(msg)
        self.public_key = public_key
        self.subject = subject
        self._key = load_vapid_private_key(private_key)

    def authorization(self, endpoint: str, now: float | None = None) -> str:
        parts = urlsplit(endpoint)
        audience = f"{parts.scheme}://{parts.netloc}"
        issued = int(now if now is not None else time.time())
        token = jwt.encode(
            {"aud": audience, "exp": issued + _VAPID_TOKEN_TTL_SECONDS, "sub": self.subject},
            self._key,
            algorithm="ES256",
            headers={"typ": "JWT"},
        )
        return f"vapid t={token}, k={self.public_key}"


class PushSender:
    """Sends Web Push messages to every registered device of a user."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._client = client
        self._signer: VapidSigner | None = None

    @property
    def configured(self) -> bool:
        return self.settings.vapid_configured

    def _get_signer(self) -> VapidSigner:
        if self._signer is None:
            self._signer = VapidSigner(
                self.settings.vapid_public_key,
                self.settings.vapid_private_key,
                self.settings.vapid_subject,
            )
        return self._signer

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.settings.push_timeout_seconds) as client:
            yield client

    async def send_push(
        self,
        subscriptions: Sequence[SubscriptionLike],
        payload: PushPayload,
    ) -> PushDeliveryReport:
        """Fan a push out to all devices concurrently.

        Raises PushConfigurationError when VAPID keys are missing or invalid.
        """
        signer = self._get_signer()
        if not subscriptions:
            return PushDeliveryReport()

        async with self._http() as client:
            results = await asyncio.gather(
                *(self._send_one(client, signer, sub.endpoint, payload) for sub in subscriptions)
            )

        report = PushDeliveryReport(results=list(results))
        logger.info(
            "push_fanout_complete",
            notification_id=payload.notification_id,
            devices=len(report.results),
            sent=report.sent,
            failed=report.failed,
            expired=len(report.expired_endpoints),
        )
        return report

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        signer: VapidSigner,
        endpoint: str,
        payload: PushPayload,
    ) -> PushResult:
        max_attempts = 1 + max(self.settings.push_transient_retries, 0)
        result = PushResult(endpoint=endpoint, outcome=TRANSIENT, error="not attempted", attempts=0)
        for attempt in range(1, max_attempts + 1):
            result = await self._post(client, signer, endpoint, payload, attempt)
            if result.outcome != TRANSIENT:
                break
            logger.warning(
                "push_transient_failure",
                endpoint_host=urlsplit(endpoint).netloc,
                attempt=attempt,
                status_code=result.status_code,
                error=result.error,
            )
        return result

    async def _post(
        self,
        client: httpx.AsyncClient,
        signer: VapidSigner,
        endpoint: str,
        payload: PushPayload,
        attempt: int,
    ) -> PushResult:
        headers = {
            "Authorization": signer.authorization(endpoint),
            "TTL": str(self.settings.push_ttl_seconds),
            "Urgency": payload.urgency,
            "Topic": payload.notification_id.replace("-", "")[:32],
            "Content-Length": "0",
        }
        try:
            response = await client.post(endpoint, headers=headers, content=b"")
        except httpx.HTTPError as exc:
            return PushResult(endpoint, TRANSIENT, None, f"{type(exc).__name__}: {exc}", attempt)

        outcome = classify_status(response.status_code)
        error = None
        if outcome != SENT:
            error = f"HTTP {response.status_code}: {response.text[:200]}"
        return PushResult(endpoint, outcome, response.status_code, error, attempt)
