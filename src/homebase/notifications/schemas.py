"""Pydantic schemas for notification dispatch, inbox and health endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from homebase.notifications.metadata import parse_metadata

Role = Literal["admin", "provider", "homeowner", "partner"]
Channel = Literal["push", "email"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Dispatch ---


class ForceChannels(_CamelModel):
    """Per-call channel overrides. ``True`` forces a channel on."""

    inapp: bool | None = None
    push: bool | None = None
    email: bool | None = None


class NotificationEvent(_CamelModel):
    """An originating event to deliver. Never mutated after construction."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., alias="userId", min_length=1)
    profile_id: str | None = Field(None, alias="profileId")
    role: Role = "homeowner"
    title: str = Field(..., min_length=1, max_length=256)
    body: str = Field(..., max_length=10_000)
    action_url: str | None = Field(None, alias="actionUrl", max_length=512)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )

    @model_validator(mode="before")
    @classmethod
    def _typed_metadata(cls, data: Any) -> Any:
        if isinstance(data, dict) and "type" in data:
            data = dict(data)
            data["metadata"] = parse_metadata(str(data["type"]), data.get("metadata"))
        return data


class DispatchRequest(NotificationEvent):
    """Body of POST /notifications/dispatch."""

    force_channels: ForceChannels | None = Field(None, alias="forceChannels")

    def to_event(self) -> NotificationEvent:
        return NotificationEvent.model_validate(
            self.model_dump(exclude={"force_channels"})
        )


class ChannelsResponse(BaseModel):
    inapp: bool
    push: bool
    email: bool


class ChannelResultResponse(BaseModel):
    channel: Channel
    status: str
    attempts: int
    error: str | None = None


class DispatchResponse(_CamelModel):
    success: bool
    dispatched: bool
    notification_id: str | None = Field(None, serialization_alias="notificationId")
    channels: ChannelsResponse | None = None
    results: list[ChannelResultResponse] = []


class AnnouncementRequest(_CamelModel):
    """Admin broadcast to every profile matching ``role`` (all profiles if omitted)."""

    role: Role | None = None
    title: str = Field(..., min_length=1, max_length=256)
    body: str = Field(..., max_length=10_000)
    action_url: str | None = Field(None, alias="actionUrl", max_length=512)
    metadata: dict[str, Any] = Field(default_factory=dict)
    force_channels: ForceChannels = Field(
        default_factory=lambda: ForceChannels(inapp=True), alias="forceChannels"
    )


class BulkDispatchResponse(BaseModel):
    success: bool
    dispatched: int
    failed: int


class RetryRequest(_CamelModel):
    notification_id: str | None = Field(None, alias="notificationId")


class RetryResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int


# --- Inbox ---


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    body: str
    action_url: str | None = None
    metadata: dict[str, Any] = {}
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    unread_count: int


# --- Preferences ---


class PreferencesResponse(BaseModel):
    channel_inapp: bool
    channel_push: bool
    channel_email: bool
    categories: dict[str, bool] = {}


class PreferencesUpdate(BaseModel):
    channel_inapp: bool | None = None
    channel_push: bool | None = None
    channel_email: bool | None = None
    categories: dict[str, bool] | None = None
