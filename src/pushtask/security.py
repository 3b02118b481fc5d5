"""Bearer token authentication for execution requests.

Tasks carry an HS256 JWT signed with ``settings.secret`` in their
Authorization header. The processing endpoint rejects requests whose token
does not verify against the same secret.
"""

from __future__ import annotations

import time
from typing import Any

from jose import JWTError, jwt

from pushtask.config import Settings
from pushtask.errors import AuthenticationError

JWT_ALGORITHM = "HS256"


def _secret(settings: Settings) -> str:
    if not settings.secret:
        raise AuthenticationError("No secret configured for task authentication")
    return settings.secret


def verification_token(settings: Settings) -> str:
    """Sign a token attached to scheduled tasks."""
    return jwt.encode({"iat": int(time.time())}, _secret(settings), algorithm=JWT_ALGORITHM)


def verify(token: str | None, settings: Settings) -> dict[str, Any] | None:
    """Decode a bearer token, returning its claims or None if invalid."""
    if not token or not settings.secret:
        return None

    try:
        return jwt.decode(token, settings.secret, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None


def verify_or_raise(token: str | None, settings: Settings) -> dict[str, Any]:
    """Decode a bearer token.

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    claims = verify(token, settings)
    if claims is None:
        raise AuthenticationError("Invalid or missing bearer token")
    return claims
