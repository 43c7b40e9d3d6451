"""Request/response bodies for the push subscription endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscribeRequest(BaseModel):
    """The browser's ``PushSubscription.toJSON()`` output."""

    endpoint: str = Field(..., min_length=1, max_length=2048, pattern=r"^https://")
    keys: SubscriptionKeys
    expiration_time: int | None = Field(None, alias="expirationTime")


class SubscribeResponse(BaseModel):
    success: bool = True
    subscription_id: str


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)


class UnsubscribeResponse(BaseModel):
    success: bool = True
    removed: bool


class VapidPublicKeyResponse(BaseModel):
    public_key: str
