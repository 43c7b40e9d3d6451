"""Event type → category mapping and typed notification metadata.

Metadata attached to a notification is validated against a closed set of
per-category models. Every model carries a version tag ``v`` so stored rows
can be migrated when a shape changes.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

CATEGORIES = (
    "announce",
    "message",
    "payment",
    "payout",
    "job",
    "quote",
    "review",
    "booking",
    "trial",
)

# Exact event type → category
EVENT_TYPE_CATEGORIES: dict[str, str] = {
    "announcement": "announce",
    "message": "message",
    "message.received": "message",
    "payment_error": "payment",
    "payment.succeeded": "payment",
    "payment.failed": "payment",
    "invoice.generated": "payment",
    "invoice.paid": "payment",
    "payout.initiated": "payout",
    "payout.paid": "payout",
    "payout.failed": "payout",
    "payout.updated": "payout",
    "job.requested": "job",
    "job.status.updated": "job",
    "quote.ready": "quote",
    "quote.approved": "quote",
    "review.received": "review",
    "booking_status": "booking",
    "booking.confirmed": "booking",
    "booking.rescheduled": "booking",
    "booking.canceled": "booking",
    "trial_status": "trial",
}

# Dotted prefixes for event types not listed above
_PREFIX_CATEGORIES: dict[str, str] = {
    "message": "message",
    "payment": "payment",
    "invoice": "payment",
    "payout": "payout",
    "job": "job",
    "quote": "quote",
    "review": "review",
    "booking": "booking",
    "trial": "trial",
}


def category_for(event_type: str) -> str:
    """Return the preference category for an event type (``announce`` if unknown)."""
    category = EVENT_TYPE_CATEGORIES.get(event_type)
    if category is not None:
        return category
    prefix = event_type.split(".", 1)[0]
    return _PREFIX_CATEGORIES.get(prefix, "announce")


class _StrictMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    v: Literal[1] = 1


class AnnouncementMetadata(BaseModel):
    """Free-form metadata for announcements and unmapped event types."""

    model_config = ConfigDict(extra="allow", frozen=True)

    v: Literal[1] = 1
    announcement_id: str | None = None
    audience: str | None = None


class MessageMetadata(_StrictMetadata):
    conversation_id: str | None = None
    message_id: str | None = None
    sender_profile_id: str | None = None


class PaymentMetadata(_StrictMetadata):
    invoice_id: str | None = None
    payment_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    reason: str | None = None


class PayoutMetadata(_StrictMetadata):
    payout_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    status: str | None = None


class JobMetadata(_StrictMetadata):
    job_id: str | None = None
    status: str | None = None


class QuoteMetadata(_StrictMetadata):
    quote_id: str | None = None
    amount: float | None = None


class ReviewMetadata(_StrictMetadata):
    review_id: str | None = None
    rating: int | None = None


class BookingMetadata(_StrictMetadata):
    booking_id: str | None = None
    status: str | None = None
    scheduled_for: str | None = None


class TrialMetadata(_StrictMetadata):
    days_remaining: int | None = None
    trial_ends_at: str | None = None
    status: str | None = None


METADATA_MODELS: dict[str, type[BaseModel]] = {
    "announce": AnnouncementMetadata,
    "message": MessageMetadata,
    "payment": PaymentMetadata,
    "payout": PayoutMetadata,
    "job": JobMetadata,
    "quote": QuoteMetadata,
    "review": ReviewMetadata,
    "booking": BookingMetadata,
    "trial": TrialMetadata,
}


def parse_metadata(event_type: str, raw: dict[str, Any] | None) -> dict[str, Any]:
    """Validate metadata for an event type and return it as a plain dict.

    Raises pydantic.ValidationError when a known category receives keys it
    does not declare.
    """
    model = METADATA_MODELS[category_for(event_type)]
    return model.model_validate(raw or {}).model_dump(exclude_none=True)
