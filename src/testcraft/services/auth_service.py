"""Auth service — registration, login, and account status.

Learn: Emails are stored lower-cased so lookups are case-insensitive
without a functional index. Registering with the email of a pending
invitee completes the invitation instead of failing as a duplicate.
"""

import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.activity import types as audit
from testcraft.activity.recorder import ActivityRecorder
from testcraft.auth.jwt import create_access_token
from testcraft.auth.password import hash_password, verify_password
from testcraft.db.models import ActivityAction, User, UserStatus
from testcraft.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
)

logger = structlog.get_logger()


class AuthService:
    def __init__(self, db: AsyncSession, activity: ActivityRecorder):
        self.db = db
        self.activity = activity

    async def _by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalars().first()

    async def register(self, name: str, email: str, password: str) -> tuple[User, str]:
        """Create an account and return it with a fresh session token.

        The very first account on a fresh install becomes the platform admin.
        """
        email = email.lower()
        user = await self._by_email(email)

        if user is not None and user.status != UserStatus.PENDING_INVITATION:
            raise ConflictError("User with this email already exists")

        if user is None:
            existing = await self.db.scalar(select(func.count(User.id)))
            user = User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                is_admin=existing == 0,
                status=UserStatus.ACTIVE,
            )
            self.db.add(user)
            action = ActivityAction.CREATED
        else:
            user.name = name
            user.password_hash = hash_password(password)
            user.status = UserStatus.ACTIVE
            action = ActivityAction.UPDATED
        await self.db.commit()

        logger.info("auth.registered", user_id=str(user.id), invited=action is ActivityAction.UPDATED)
        await self.activity.record(user.id, action, audit.USER, user.id, {"email": email})
        return user, create_access_token(str(user.id), user.email)

    async def login(self, email: str, password: str) -> tuple[User, str]:
        user = await self._by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("auth.login_failed", email=email.lower())
            raise AuthenticationError("Invalid email or password")
        if user.status != UserStatus.ACTIVE:
            raise AuthorizationError("Account is not active")
        return user, create_access_token(str(user.id), user.email)

    async def set_status(self, admin: User, user_id: uuid.UUID, status: UserStatus) -> User:
        """Suspend or reactivate an account. Admins cannot suspend themselves."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.id == admin.id and status != UserStatus.ACTIVE:
            raise AuthorizationError("You cannot change your own account status")
        user.status = status
        await self.db.commit()

        await self.activity.record(
            admin.id, ActivityAction.UPDATED, audit.USER, user.id, {"status": status.value}
        )
        return user
