"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from uticoins.auth.jwt import verify_token
from uticoins.config import get_settings
from uticoins.rewards.errors import ClaimError, ClaimErrorKind

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str
    email: str | None = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> CurrentUser:
    """
    Extract and verify the bearer JWT.

    Failures surface as ``unauthenticated`` so clients hand off to their
    auth flow instead of retrying.
    """
    if credentials is None:
        raise ClaimError(ClaimErrorKind.UNAUTHENTICATED, "Authentication required")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise ClaimError(ClaimErrorKind.UNAUTHENTICATED, str(e)) from e

    return CurrentUser(
        id=str(payload["sub"]),
        role=str(payload.get("role", "authenticated")),
        email=payload.get("email"),
    )


async def get_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Same as get_current_user but requires the configured admin role."""
    if user.role != get_settings().admin_role:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user
