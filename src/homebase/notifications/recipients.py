"""Recipient lookups against marketplace profiles."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homebase.db.models import Profile


async def profiles_for_role(db: AsyncSession, role: str | None = None) -> list[Profile]:
    """Profiles an announcement should reach (every profile when role is None)."""
    query = select(Profile).order_by(Profile.created_at, Profile.id)
    if role is not None:
        query = query.where(Profile.role == role)
    result = await db.execute(query)
    return list(result.scalars().all())


async def resolve_email(db: AsyncSession, user_id: str, profile_id: str | None = None) -> str | None:
    """Email address for a recipient, preferring the profile the event names."""
    if profile_id is not None:
        result = await db.execute(select(Profile.email).where(Profile.id == profile_id))
        email = result.scalar_one_or_none()
        if email:
            return email
    result = await db.execute(
        select(Profile.email)
        .where(Profile.user_id == user_id, Profile.email.is_not(None))
        .order_by(Profile.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()
