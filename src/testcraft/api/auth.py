"""Auth API — registration, login, logout, current user, account status.

Learn: Routes for user authentication:
- POST /auth/register → create an account (first account becomes admin)
- POST /auth/login → email/password → session token (+ httponly cookie)
- POST /auth/logout → clear the cookie
- GET /auth/me → current user info
- PUT /users/:id/status → admin suspends / reactivates an account

register and login are throttled per client address by RateLimitMiddleware.
"""

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.activity.recorder import ActivityRecorder, get_activity_recorder
from testcraft.auth.dependencies import get_current_user, require_admin
from testcraft.config import settings
from testcraft.db.engine import get_db
from testcraft.db.models import User
from testcraft.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserRead,
    UserStatusUpdate,
)
from testcraft.services.auth_service import AuthService

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity_recorder),
) -> AuthService:
    return AuthService(db, activity)


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.auth_cookie_name,
        token,
        max_age=settings.access_token_expire_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.environment == "production",
    )


# ─── Register / Login / Logout ──────────────────────────

@router.post("/auth/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest, response: Response, svc: AuthService = Depends(_svc)):
    user, token = await svc.register(name=body.name, email=body.email, password=body.password)
    _set_auth_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/auth/login", response_model=AuthResponse)
async def login(body: LoginRequest, response: Response, svc: AuthService = Depends(_svc)):
    """Login with email and password → session token."""
    user, token = await svc.login(email=body.email, password=body.password)
    _set_auth_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/auth/logout")
async def logout(response: Response):
    response.delete_cookie(settings.auth_cookie_name)
    return {"success": True}


# ─── Current user ───────────────────────────────────────

@router.get("/auth/me", response_model=UserRead)
async def get_me(user: User = Depends(get_current_user)):
    return user


# ─── Admin ──────────────────────────────────────────────

@router.put("/users/{user_id}/status", response_model=UserRead)
async def set_user_status(
    user_id: uuid.UUID,
    body: UserStatusUpdate,
    admin: User = Depends(require_admin),
    svc: AuthService = Depends(_svc),
):
    return await svc.set_status(admin, user_id, body.status)
