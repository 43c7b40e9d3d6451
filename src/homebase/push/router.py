"""Web Push subscription endpoints, called by the frontends' service worker setup."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.auth.dependencies import get_current_user_id
from homebase.config import Settings, get_settings
from homebase.database import get_session
from homebase.notifications.subscriptions import register, unregister
from homebase.push.schemas import (
    SubscribeRequest,
    SubscribeResponse,
    UnsubscribeRequest,
    UnsubscribeResponse,
    VapidPublicKeyResponse,
)

router = APIRouter(prefix="/api/v1/push", tags=["Push"])


@router.get("/vapid-public-key", response_model=VapidPublicKeyResponse)
async def vapid_public_key(settings: Settings = Depends(get_settings)) -> VapidPublicKeyResponse:
    """Application server key the browser needs for ``pushManager.subscribe``."""
    if not settings.vapid_public_key:
        raise HTTPException(status_code=503, detail="Push notifications are not configured")
    return VapidPublicKeyResponse(public_key=settings.vapid_public_key)


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    body: SubscribeRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> SubscribeResponse:
    sub = await register(
        db,
        user_id=user_id,
        endpoint=body.endpoint,
        p256dh=body.keys.p256dh,
        auth=body.keys.auth,
        user_agent=request.headers.get("user-agent"),
    )
    await db.commit()
    return SubscribeResponse(subscription_id=sub.id)


@router.post("/unsubscribe", response_model=UnsubscribeResponse)
async def unsubscribe(
    body: UnsubscribeRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> UnsubscribeResponse:
    """Remove one of the caller's devices. Unknown endpoints are not an error."""
    removed = await unregister(db, body.endpoint, user_id=user_id)
    await db.commit()
    return UnsubscribeResponse(removed=removed)
