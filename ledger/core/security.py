from typing import Any

import jwt

from ledger.config import settings


def decode_session_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an identity provider session token.

    Raises:
        jwt.InvalidTokenError: bad signature, expired, wrong issuer or missing claims
    """
    if not settings.AUTH_JWT_KEY:
        raise jwt.InvalidTokenError("AUTH_JWT_KEY is not configured")

    options = {"require": ["sub", "exp"]}
    if settings.AUTH_JWT_ISSUER:
        return jwt.decode(
            token,
            settings.AUTH_JWT_KEY,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            issuer=settings.AUTH_JWT_ISSUER,
            options=options,
        )
    return jwt.decode(
        token,
        settings.AUTH_JWT_KEY,
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        options=options,
    )
