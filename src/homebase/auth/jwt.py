"""
Verification of access tokens issued by the managed auth provider.

Tokens are HS256-signed with the project's JWT secret; ``sub`` is the user id
and ``aud`` is ``authenticated`` for signed-in users. This service never issues
user tokens in production; ``create_access_token`` exists for local tooling
and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from homebase.config import Settings


def create_access_token(
    user_id: str,
    settings: Settings,
    *,
    role: str = "authenticated",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint a token shaped like the provider's access tokens."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "aud": settings.auth_jwt_audience,
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)


def verify_token(token: str, settings: Settings) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired or has no subject.
    """
    if not settings.auth_jwt_secret:
        msg = "JWT secret not configured"
        raise jwt.InvalidTokenError(msg)
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)
    return payload
