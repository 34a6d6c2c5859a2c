"""
JWT verification for tokens issued by the identity provider.

This service never issues tokens. HS* algorithms verify with the shared
secret, everything else with the provider's public key.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jwt

from playdates.config import get_settings

_public_key: str | None = None


def _verification_key() -> str:
    """Shared secret or public key (the key file is cached after first read)."""
    global _public_key  # noqa: PLW0603
    settings = get_settings()
    if settings.jwt_algorithm.upper().startswith("HS"):
        return settings.jwt_secret
    if _public_key is None:
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _public_key


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _public_key  # noqa: PLW0603
    _public_key = None


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Args:
        token: The encoded JWT string.

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _verification_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    return payload


def groups_from_claims(payload: dict[str, Any]) -> list[str]:
    """Group memberships from the configured claim (a list or a comma-separated string)."""
    raw = payload.get(get_settings().jwt_groups_claim) or []
    if isinstance(raw, str):
        return [g.strip() for g in raw.split(",") if g.strip()]
    return [str(g) for g in raw]
