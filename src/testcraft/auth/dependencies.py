"""FastAPI auth dependencies — the session resolver.

Learn: These are used as Depends() in route handlers to extract
and validate the current user from the request.

Token sources, in order:
1. `Authorization: Bearer <token>` header
2. the `auth_token` cookie

Resolution fails closed: a bad signature, an expired token, a malformed
subject, an unknown user or a user who is not ACTIVE all resolve to None.
"""

import uuid
from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.auth.jwt import TokenError, verify_token
from testcraft.config import settings
from testcraft.db.engine import get_db
from testcraft.db.models import User, UserStatus
from testcraft.errors import AuthenticationError, AuthorizationError

logger = structlog.get_logger()


def extract_token(
    authorization: Optional[str], cookie_token: Optional[str]
) -> Optional[str]:
    """Pick the bearer token if present, else the cookie value."""
    if authorization:
        scheme, _, token = authorization.strip().partition(" ")
        token = token.strip()
        if scheme.lower() == "bearer" and token:
            return token
    return cookie_token or None


async def resolve_user(
    authorization: Optional[str],
    cookie_token: Optional[str],
    db: AsyncSession,
) -> Optional[User]:
    """Resolve the request's credentials to an ACTIVE user, or None."""
    token = extract_token(authorization, cookie_token)
    if not token:
        return None

    try:
        payload = verify_token(token)
        user_id = uuid.UUID(str(payload["sub"]))
    except (TokenError, ValueError) as e:
        logger.debug("auth.token_rejected", reason=str(e))
        return None

    user = await db.get(User, user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        return None
    return user


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Resolve the current user (optional — returns None if no valid auth).

    Learn: This is the "soft" auth dependency. For mandatory auth,
    use get_current_user instead.
    """
    cookie_token = request.cookies.get(settings.auth_cookie_name)
    return await resolve_user(authorization, cookie_token, db)


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Resolve the current user (required — 401 if no valid auth)."""
    if user is None:
        raise AuthenticationError()
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Platform admins only (the first registered user, or promoted later)."""
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user
