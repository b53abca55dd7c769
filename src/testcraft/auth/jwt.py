"""Session tokens.

Learn: A session token is an HS256 JWT holding the user id (`sub`), the
email and the issue/expiry times. Nothing is stored server-side, so a
token stays cryptographically valid until it expires; suspension is
enforced when the token is resolved to a User row (see dependencies.py).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from testcraft.config import settings

REQUIRED_CLAIMS = ["sub", "exp"]


class TokenError(Exception):
    """The token is unusable: expired, forged, malformed or missing claims."""


def create_access_token(
    user_id: str,
    email: str,
    expires_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    lifetime = timedelta(days=settings.access_token_expire_days if expires_days is None else expires_days)
    claims = {"sub": user_id, "email": email, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Decode `token` and return its claims, or raise TokenError."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Session token expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid session token: {e}") from e
