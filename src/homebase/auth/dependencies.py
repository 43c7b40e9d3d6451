"""FastAPI authentication dependencies."""

from __future__ import annotations

import hmac

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from homebase.auth.jwt import verify_token
from homebase.config import Settings, get_settings

_bearer = HTTPBearer(auto_error=False)


def _require_credentials(credentials: HTTPAuthorizationCredentials | None) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    settings: Settings = Depends(get_settings),
) -> str:
    """Verify the caller's access token and return its user id. Raises 401."""
    token = _require_credentials(credentials)
    try:
        payload = verify_token(token, settings)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return str(payload["sub"])


async def require_service_role(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Gate internal endpoints (dispatch, announcements, retry) to backend callers.

    The caller presents the service role key as its bearer token.
    """
    token = _require_credentials(credentials)
    if not settings.service_role_key:
        raise HTTPException(status_code=503, detail="Service key not configured")
    if not hmac.compare_digest(token.encode(), settings.service_role_key.encode()):
        raise HTTPException(status_code=403, detail="Service role required")
