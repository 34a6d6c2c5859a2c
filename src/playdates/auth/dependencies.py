"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from playdates.auth.jwt import groups_from_claims, verify_token
from playdates.config import get_settings

_bearer = HTTPBearer()


@dataclass(frozen=True)
class Identity:
    """The authenticated caller: a user id and whether they hold the admin capability."""

    user_id: str
    is_admin: bool = False


async def get_identity(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> Identity:
    """
    Verify the bearer JWT and return the caller's identity.

    Raises 401 on a missing, invalid or expired token.
    """
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    admin_group = get_settings().jwt_admin_group
    return Identity(
        user_id=str(payload["sub"]),
        is_admin=admin_group in groups_from_claims(payload),
    )
