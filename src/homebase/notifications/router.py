"""Notification API endpoints.

Internal (service key): dispatch, announcements, retry.
User (access token): inbox, read state, preferences.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homebase.auth.dependencies import get_current_user_id, require_service_role
from homebase.config import Settings, get_settings
from homebase.database import get_session
from homebase.dependencies import get_dispatcher, get_session_factory_dep
from homebase.notifications.dispatcher import Dispatcher
from homebase.notifications.health import health_check
from homebase.notifications.preferences import (
    CHANNELS,
    Preferences,
    get_preferences,
    set_category_preference,
    set_preference,
)
from homebase.notifications.retry_worker import drain_outbox
from homebase.notifications.schemas import (
    AnnouncementRequest,
    BulkDispatchResponse,
    ChannelResultResponse,
    ChannelsResponse,
    DispatchRequest,
    DispatchResponse,
    NotificationListResponse,
    NotificationResponse,
    PreferencesResponse,
    PreferencesUpdate,
    RetryRequest,
    RetryResponse,
    UnreadCountResponse,
)
from homebase.notifications.service import (
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


# --- Internal ---


@router.post("/dispatch", response_model=DispatchResponse, dependencies=[Depends(require_service_role)])
async def dispatch_notification(
    body: DispatchRequest,
    db: AsyncSession = Depends(get_session),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> DispatchResponse:
    """Deliver one event to one user on every channel they allow."""
    result = await dispatcher.dispatch(db, body.to_event(), body.force_channels)
    await db.commit()
    return DispatchResponse(
        success=True,
        dispatched=result.dispatched,
        notification_id=result.notification_id,
        channels=ChannelsResponse(
            inapp=result.channels.inapp,
            push=result.channels.push,
            email=result.channels.email,
        )
        if result.channels
        else None,
        results=[
            ChannelResultResponse(channel=r.channel, status=r.status, attempts=r.attempts, error=r.error)
            for r in result.results
        ],
    )


@router.post(
    "/announcements",
    response_model=BulkDispatchResponse,
    dependencies=[Depends(require_service_role)],
)
async def send_announcement(
    body: AnnouncementRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory_dep),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> BulkDispatchResponse:
    """Broadcast to every profile of a role. Counts, never a partial error."""
    result = await dispatcher.dispatch_announcement(
        session_factory,
        role=body.role,
        title=body.title,
        body=body.body,
        action_url=body.action_url,
        metadata=body.metadata,
        force=body.force_channels,
    )
    return BulkDispatchResponse(
        success=True,
        dispatched=result.succeeded_count,
        failed=result.failed_count,
    )


@router.post("/retry", response_model=RetryResponse, dependencies=[Depends(require_service_role)])
async def retry_outbox(
    body: RetryRequest | None = None,
    db: AsyncSession = Depends(get_session),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> RetryResponse:
    """Re-attempt due outbox entries now (or every pending entry of one notification)."""
    summary = await drain_outbox(db, dispatcher, notification_id=body.notification_id if body else None)
    await db.commit()
    return RetryResponse(**summary)


@router.get("/health")
async def notifications_health(
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Delivery health report. 200 when healthy or degraded, 500 when the check itself fails."""
    try:
        report = await health_check(db, settings)
    except Exception as exc:
        logger.exception("notifications_health_failed")
        return JSONResponse(
            status_code=500,
            content={
                "status": "unhealthy",
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
    return JSONResponse(content=report.model_dump(mode="json", by_alias=True))


# --- Inbox ---


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    """List the caller's notifications (paginated, newest first)."""
    notifications, total = await get_notifications(db, user_id, page, per_page)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=n.id,
                type=n.type,
                title=n.title,
                body=n.body,
                action_url=n.action_url,
                metadata=n.notification_metadata or {},
                read_at=n.read_at,
                created_at=n.created_at,
            )
            for n in notifications
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> UnreadCountResponse:
    count = await get_unread_count(db, user_id)
    return UnreadCountResponse(unread_count=count)


@router.post("/read-all")
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    count = await mark_all_as_read(db, user_id)
    await db.commit()
    return {"detail": f"Marked {count} notifications as read"}


@router.post("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    found = await mark_as_read(db, user_id, notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return {"detail": "Notification marked as read"}


# --- Preferences ---


def _preferences_response(prefs: Preferences) -> PreferencesResponse:
    return PreferencesResponse(
        channel_inapp=prefs.channel_inapp,
        channel_push=prefs.channel_push,
        channel_email=prefs.channel_email,
        categories=prefs.categories,
    )


@router.get("/preferences", response_model=PreferencesResponse)
async def read_preferences(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> PreferencesResponse:
    return _preferences_response(await get_preferences(db, user_id))


@router.put("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    body: PreferencesUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> PreferencesResponse:
    """Update global channel flags and per-category overrides (``<category>_<channel>``)."""
    try:
        for channel in CHANNELS:
            enabled = getattr(body, f"channel_{channel}")
            if enabled is not None:
                await set_preference(db, user_id, channel, enabled)
        for key, enabled in (body.categories or {}).items():
            category, _, channel = key.rpartition("_")
            await set_category_preference(db, user_id, category, channel, enabled)
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=422, detail=str(e)) from e
    await db.commit()
    return _preferences_response(await get_preferences(db, user_id))
