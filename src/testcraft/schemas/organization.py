"""Pydantic schemas for organizations, members and the RBAC matrix.

Learn: Pydantic v2 models validate request/response data. Separate
"Create"/"Update" schemas (input) from "Read" schemas (output) for clean APIs.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from testcraft.db.models import ObjectType, OrgRole, RbacAction
from testcraft.schemas.auth import UserBrief


# ─── Organizations ──────────────────────────────────────

class OrgCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class OrgUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    max_projects: Optional[int] = Field(None, ge=1)
    max_test_cases_per_project: Optional[int] = Field(None, ge=1)


class OrgRead(BaseModel):
    id: uuid.UUID
    name: str
    max_projects: int
    max_test_cases_per_project: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgSummary(OrgRead):
    """List entry: the org plus the caller's role and headline counts."""
    role: OrgRole
    member_count: int
    project_count: int


class ProjectBrief(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OrgDetail(OrgRead):
    """Org with nested members and projects."""
    members: list["MemberRead"] = []
    projects: list[ProjectBrief] = []


# ─── Members ────────────────────────────────────────────

class MemberInvite(BaseModel):
    email: EmailStr
    role: OrgRole


class MemberRoleUpdate(BaseModel):
    role: OrgRole


class MemberRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: OrgRole
    joined_at: datetime
    user: UserBrief

    model_config = {"from_attributes": True}


# ─── RBAC ───────────────────────────────────────────────

class PermissionRead(BaseModel):
    id: uuid.UUID
    role: OrgRole
    object_type: ObjectType
    action: RbacAction
    allowed: bool

    model_config = {"from_attributes": True}


class PermissionUpsert(BaseModel):
    role: OrgRole
    object_type: ObjectType
    action: RbacAction
    allowed: bool


class PermissionToggle(BaseModel):
    allowed: bool


OrgDetail.model_rebuild()
