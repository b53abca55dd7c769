"""Pydantic schemas for registration, login and users."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from testcraft.db.models import UserStatus


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    avatar_url: Optional[str] = None
    is_admin: bool
    status: UserStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class UserBrief(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Returned by register and login. The token is also set as a cookie on login."""
    user: UserRead
    token: str


class UserStatusUpdate(BaseModel):
    status: UserStatus
