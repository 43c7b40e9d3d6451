"""Notification dispatcher.

Flow for one event:
1. Resolve the recipient's channels from preferences (+ per-call overrides)
2. Write the in-app Notification row (always, exactly once)
3. Queue one pending outbox entry per enabled push/email channel
4. Send the channels concurrently, each under its own timeout
5. Record each outcome on its outbox entry, drop expired push endpoints

A failing channel never fails the dispatch: once the in-app row exists the
event counts as dispatched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homebase.config import Settings
from homebase.db.models import Notification, OutboxEntry, Profile, PushSubscription
from homebase.email.service import EmailService
from homebase.notifications.batch import BatchResult, best_effort
from homebase.notifications.errors import (
    ConfigurationError,
    RecipientResolutionError,
    TransientDeliveryError,
)
from homebase.notifications.metadata import category_for
from homebase.notifications.outbox import create_entry, mark_failed, mark_sent, schedule_retry
from homebase.notifications.preferences import ResolvedChannels, get_preferences, resolve_channels
from homebase.notifications.push import TRANSIENT, PushPayload, PushSender
from homebase.notifications.realtime import publish_notification
from homebase.notifications.recipients import profiles_for_role, resolve_email
from homebase.notifications.schemas import ForceChannels, NotificationEvent
from homebase.notifications.service import create_notification
from homebase.notifications.subscriptions import delete_endpoints, list_for

logger = structlog.get_logger()

SKIPPED = "skipped"
NO_SUBSCRIPTIONS = "no push subscriptions"
NO_EMAIL_ADDRESS = "no email address for user"


@dataclass(frozen=True)
class ChannelOutcome:
    """What happened on one channel of one notification."""

    channel: str
    status: str
    attempts: int = 0
    error: str | None = None


@dataclass
class DispatchResult:
    dispatched: bool
    notification_id: str | None
    channels: ResolvedChannels | None
    results: list[ChannelOutcome] = field(default_factory=list)

    def outcome(self, channel: str) -> ChannelOutcome | None:
        return next((r for r in self.results if r.channel == channel), None)


@dataclass(frozen=True)
class _Attempt:
    ok: bool
    error: str | None = None
    retryable: bool = False
    expired_endpoints: tuple[str, ...] = ()


class Dispatcher:
    """Fans one event out to in-app, push and email.

    Senders and Redis are injected; anything left out is built from settings.
    """

    def __init__(
        self,
        settings: Settings,
        push_sender: PushSender | None = None,
        email_service: EmailService | None = None,
        redis: Any | None = None,
    ) -> None:
        self.settings = settings
        self.push_sender = push_sender or PushSender(settings)
        self.email_service = email_service or EmailService(settings)
        self.redis = redis

    async def dispatch(
        self,
        db: AsyncSession,
        event: NotificationEvent,
        force: ForceChannels | None = None,
    ) -> DispatchResult:
        """Deliver one event to one recipient. Flushes but never commits."""
        prefs = await get_preferences(db, event.user_id)
        channels = resolve_channels(prefs, event.type, force)

        notification = await create_notification(db, event, channels)
        notification.delivered_inapp = channels.inapp

        subscriptions: list[PushSubscription] = []
        skipped: list[ChannelOutcome] = []
        now = datetime.now(timezone.utc)
        entries: list[OutboxEntry] = []
        for channel in channels.enabled_outbox_channels():
            if channel == "push":
                subscriptions = await list_for(db, event.user_id)
                if not subscriptions:
                    skipped.append(ChannelOutcome("push", SKIPPED, 0, NO_SUBSCRIPTIONS))
                    continue
            entries.append(await create_entry(db, notification.id, channel, now))
        await db.flush()

        logger.info(
            "notification_dispatched",
            notification_id=notification.id,
            user_id=event.user_id,
            type=event.type,
            inapp=channels.inapp,
            push=channels.push,
            email=channels.email,
            outbox_entries=len(entries),
        )

        if channels.inapp:
            await publish_notification(self.redis, notification)

        results = await self.deliver(db, notification, entries, subscriptions=subscriptions)
        return DispatchResult(
            dispatched=True,
            notification_id=notification.id,
            channels=channels,
            results=skipped + results,
        )

    async def deliver(
        self,
        db: AsyncSession,
        notification: Notification,
        entries: Sequence[OutboxEntry],
        *,
        retry: bool = False,
        subscriptions: Sequence[PushSubscription] | None = None,
    ) -> list[ChannelOutcome]:
        """Attempt every pending entry of a notification once.

        During dispatch a failed attempt closes the entry. With ``retry`` a
        retryable failure is rescheduled with backoff until the attempt
        budget runs out.
        """
        if not entries:
            return []

        wanted = {entry.channel for entry in entries}
        if "push" in wanted and not subscriptions:
            subscriptions = await list_for(db, notification.user_id)
        email_address = None
        if "email" in wanted:
            email_address = await resolve_email(db, notification.user_id, notification.profile_id)

        attempts = await asyncio.gather(
            *(
                self._attempt(entry.channel, notification, subscriptions or [], email_address)
                for entry in entries
            )
        )

        now = datetime.now(timezone.utc)
        expired: list[str] = []
        outcomes: list[ChannelOutcome] = []
        for entry, attempt in zip(entries, attempts):
            expired.extend(attempt.expired_endpoints)
            if attempt.ok:
                mark_sent(entry, now)
                setattr(notification, f"delivered_{entry.channel}", True)
            elif retry and attempt.retryable:
                schedule_retry(
                    entry,
                    attempt.error or "unknown error",
                    max_attempts=self.settings.outbox_max_attempts,
                    base_minutes=self.settings.outbox_retry_base_minutes,
                    now=now,
                    max_error_length=self.settings.outbox_error_max_length,
                )
            else:
                mark_failed(
                    entry,
                    attempt.error or "unknown error",
                    now,
                    self.settings.outbox_error_max_length,
                )
            log = logger.info if attempt.ok else logger.warning
            log(
                f"outbox_{entry.status}",
                notification_id=notification.id,
                channel=entry.channel,
                attempts=entry.attempts,
                error=entry.last_error if not attempt.ok else None,
            )
            outcomes.append(ChannelOutcome(entry.channel, entry.status, entry.attempts, entry.last_error))

        if expired:
            await delete_endpoints(db, expired)

        await db.flush()
        return outcomes

    async def _attempt(
        self,
        channel: str,
        notification: Notification,
        subscriptions: Sequence[PushSubscription],
        email_address: str | None,
    ) -> _Attempt:
        if channel == "push":
            send = self._send_push(notification, subscriptions)
        else:
            send = self._send_email(notification, email_address)
        timeout = self.settings.channel_timeout_seconds
        try:
            return await asyncio.wait_for(send, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("channel_timeout", notification_id=notification.id, channel=channel, timeout=timeout)
            return _Attempt(ok=False, error=f"{channel} send timed out after {timeout:g}s", retryable=True)
        except Exception as exc:
            logger.warning(
                "channel_send_failed",
                notification_id=notification.id,
                channel=channel,
                error=str(exc),
                exc_info=True,
            )
            return _Attempt(
                ok=False,
                error=f"{type(exc).__name__}: {exc}",
                retryable=isinstance(exc, (TransientDeliveryError, ConfigurationError)),
            )

    async def _send_push(
        self,
        notification: Notification,
        subscriptions: Sequence[PushSubscription],
    ) -> _Attempt:
        if not subscriptions:
            return _Attempt(ok=False, error=NO_SUBSCRIPTIONS)
        payload = PushPayload(
            notification_id=notification.id,
            title=notification.title,
            body=notification.body,
            url=notification.action_url,
            urgency="high" if category_for(notification.type) == "message" else "normal",
        )
        report = await self.push_sender.send_push(subscriptions, payload)
        expired = tuple(report.expired_endpoints)
        if report.ok:
            return _Attempt(ok=True, expired_endpoints=expired)
        return _Attempt(
            ok=False,
            error=report.error_summary(),
            retryable=any(r.outcome == TRANSIENT for r in report.results),
            expired_endpoints=expired,
        )

    async def _send_email(self, notification: Notification, address: str | None) -> _Attempt:
        if not address:
            return _Attempt(ok=False, error=NO_EMAIL_ADDRESS)
        result = await self.email_service.send_notification(
            address,
            notification.title,
            notification.body,
            notification.action_url,
        )
        return _Attempt(ok=result.ok, error=result.error, retryable=result.retryable)

    # --- Fan-out ---

    async def dispatch_bulk(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        events: Iterable[NotificationEvent],
        force: ForceChannels | None = None,
    ) -> BatchResult[NotificationEvent]:
        """Dispatch many events, one session and commit per recipient."""

        async def _one(event: NotificationEvent) -> bool:
            async with session_factory() as db:
                await self.dispatch(db, event, force)
                await db.commit()
            return True

        return await best_effort(events, _one, label="notification_bulk")

    async def dispatch_announcement(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        role: str | None,
        title: str,
        body: str,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        force: ForceChannels | None = None,
    ) -> BatchResult[Profile]:
        """Broadcast to every profile with ``role`` (everyone when None)."""
        async with session_factory() as db:
            profiles = await profiles_for_role(db, role)

        async def _one(profile: Profile) -> bool:
            if not profile.user_id:
                msg = f"Profile {profile.id} has no user id"
                raise RecipientResolutionError(msg)
            event = NotificationEvent(
                type="announcement",
                user_id=profile.user_id,
                profile_id=profile.id,
                role=profile.role,
                title=title,
                body=body,
                action_url=action_url,
                metadata=metadata or {},
            )
            async with session_factory() as db:
                await self.dispatch(db, event, force)
                await db.commit()
            return True

        result = await best_effort(profiles, _one, label="announcement")
        logger.info(
            "announcement_sent",
            role=role or "all",
            recipients=result.total,
            dispatched=result.succeeded_count,
            failed=result.failed_count,
        )
        return result


def build_dispatcher(settings: Settings, http_client: httpx.AsyncClient, redis: Any | None = None) -> Dispatcher:
    """The process-wide dispatcher: one signer, one pooled HTTP client for push and email."""
    return Dispatcher(
        settings,
        push_sender=PushSender(settings, client=http_client),
        email_service=EmailService(settings, client=http_client),
        redis=redis,
    )
