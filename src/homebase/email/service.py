"""
Email channel sender with provider abstraction.

Supports the Resend HTTP API (default) and SMTP.
Provider is selected via configuration.
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx
import structlog

from homebase.config import Settings
from homebase.email.templates import notification_email
from homebase.notifications.errors import (
    ConfigurationError,
    DeliveryError,
    EmailConfigurationError,
    TransientDeliveryError,
)

logger = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class EmailResult:
    ok: bool
    error: str | None = None
    retryable: bool = False


class BaseEmailProvider(ABC):
    """Abstract base class for email delivery providers."""

    name = "base"

    @abstractmethod
    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        """Send an email. Raises DeliveryError on failure."""
        ...


class ResendProvider(BaseEmailProvider):
    """Send emails via Resend API."""

    name = "resend"

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.from_name = from_name
        self._client = client

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        """Send via Resend HTTP API."""
        if not self.api_key:
            msg = "Resend API key not configured"
            raise EmailConfigurationError(msg)

        payload = {
            "from": f"{self.from_name} <{self.from_address}>",
            "to": [to_email],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            if self._client is not None:
                response = await self._client.post(RESEND_API_URL, headers=headers, json=payload, timeout=10.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(RESEND_API_URL, headers=headers, json=payload, timeout=10.0)
        except httpx.HTTPError as exc:
            msg = f"Resend request failed: {type(exc).__name__}: {exc}"
            raise TransientDeliveryError(msg) from exc

        if response.status_code == 429 or response.status_code >= 500:
            msg = f"Resend API error ({response.status_code}): {response.text[:300]}"
            raise TransientDeliveryError(msg)
        if response.is_error:
            detail = response.text[:300]
            try:
                detail = response.json().get("message", detail)
            except ValueError:
                pass
            msg = f"Resend API error ({response.status_code}): {detail}"
            raise DeliveryError(msg)


class SMTPProvider(BaseEmailProvider):
    """Send emails via SMTP using aiosmtplib."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.from_name = from_name
        self.use_tls = use_tls

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        """Send via SMTP."""
        import aiosmtplib

        msg = MIMEMultipart("alternative")
        msg["From"] = f"{self.from_name} <{self.from_address}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            tls_context = ssl.create_default_context() if self.use_tls else None
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                tls_context=tls_context,
            )
        except aiosmtplib.SMTPResponseException as exc:
            error = f"SMTP error ({exc.code}): {exc.message}"
            if exc.code >= 500:
                raise DeliveryError(error) from exc
            raise TransientDeliveryError(error) from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            error = f"SMTP send failed: {type(exc).__name__}: {exc}"
            raise TransientDeliveryError(error) from exc


def create_provider(settings: Settings, client: httpx.AsyncClient | None = None) -> BaseEmailProvider:
    """Create email provider based on configuration."""
    provider_name = settings.email_provider.lower()

    if provider_name == "resend":
        return ResendProvider(
            api_key=settings.resend_api_key,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            client=client,
        )
    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
        )
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


class EmailService:
    """
    Email channel sender.

    Stateless: one attempt per call. Failures come back as an EmailResult
    for the outbox to record; they are never raised to the dispatcher.
    """

    def __init__(
        self,
        settings: Settings,
        provider: BaseEmailProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.provider = provider or create_provider(settings, client)

    @property
    def configured(self) -> bool:
        return self.settings.email_configured

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> EmailResult:
        try:
            await self.provider.send(to, subject, html_body, text_body)
        except DeliveryError as exc:
            logger.warning(
                "email_send_failed",
                provider=self.provider.name,
                subject=subject,
                error=str(exc),
                transient=isinstance(exc, TransientDeliveryError),
            )
            return EmailResult(
                ok=False,
                error=str(exc),
                retryable=isinstance(exc, (TransientDeliveryError, ConfigurationError)),
            )
        logger.info("email_sent", provider=self.provider.name, subject=subject)
        return EmailResult(ok=True)

    async def send_notification(
        self,
        to: str,
        title: str,
        body: str,
        action_url: str | None = None,
    ) -> EmailResult:
        """Render the notification template and send it."""
        subject, html_body, text_body = notification_email(
            title,
            body,
            action_url,
            app_url=self.settings.app_url,
            app_name=self.settings.email_from_name,
        )
        return await self.send_email(to, subject, html_body, text_body)
