"""Organization, member, and RBAC API routes.

Learn: FastAPI routers define HTTP endpoints. Each route function
receives dependencies (db session, current user, activity recorder) via
Depends() and delegates to the service layer. Authorization failures are
raised by the service as TestCraftError subclasses and rendered by the
handler registered in main.create_app().
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.activity.recorder import ActivityRecorder, get_activity_recorder
from testcraft.auth.dependencies import get_current_user
from testcraft.db.engine import get_db
from testcraft.db.models import User
from testcraft.schemas.common import Deleted
from testcraft.schemas.organization import (
    MemberInvite,
    MemberRead,
    MemberRoleUpdate,
    OrgCreate,
    OrgDetail,
    OrgRead,
    OrgSummary,
    OrgUpdate,
    PermissionRead,
    PermissionToggle,
    PermissionUpsert,
)
from testcraft.services.organization_service import OrganizationService

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity_recorder),
) -> OrganizationService:
    return OrganizationService(db, activity)


# ─── Organizations ──────────────────────────────────────

@router.post("/organizations", response_model=OrgRead, status_code=201)
async def create_org(
    body: OrgCreate,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    """Create an organization. The caller becomes its ORGANIZATION_MANAGER."""
    return await svc.create_org(user, name=body.name)


@router.get("/organizations", response_model=list[OrgSummary])
async def list_orgs(
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.list_orgs(user)


@router.get("/organizations/{org_id}", response_model=OrgDetail)
async def get_org(
    org_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.get_org(user, org_id)


@router.put("/organizations/{org_id}", response_model=OrgRead)
async def update_org(
    org_id: uuid.UUID,
    body: OrgUpdate,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.update_org(user, org_id, body.model_dump(exclude_unset=True))


# ─── Members ────────────────────────────────────────────

@router.get("/organizations/{org_id}/members", response_model=list[MemberRead])
async def list_members(
    org_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.list_members(user, org_id)


@router.post("/organizations/{org_id}/members", response_model=MemberRead, status_code=201)
async def invite_member(
    org_id: uuid.UUID,
    body: MemberInvite,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    """Add a member by email; unknown emails get a pending invitation."""
    return await svc.invite_member(user, org_id, email=body.email, role=body.role)


@router.put("/organizations/{org_id}/members/{member_id}", response_model=MemberRead)
async def update_member_role(
    org_id: uuid.UUID,
    member_id: uuid.UUID,
    body: MemberRoleUpdate,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.update_member_role(user, org_id, member_id, body.role)


@router.delete("/organizations/{org_id}/members/{member_id}", response_model=Deleted)
async def remove_member(
    org_id: uuid.UUID,
    member_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    await svc.remove_member(user, org_id, member_id)
    return Deleted()


# ─── RBAC matrix ────────────────────────────────────────

@router.get("/organizations/{org_id}/rbac", response_model=list[PermissionRead])
async def list_permissions(
    org_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.list_permissions(user, org_id)


@router.put("/organizations/{org_id}/rbac", response_model=list[PermissionRead])
async def upsert_permissions(
    org_id: uuid.UUID,
    body: list[PermissionUpsert],
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.upsert_permissions(user, org_id, [p.model_dump() for p in body])


@router.put("/organizations/{org_id}/rbac/{permission_id}", response_model=PermissionRead)
async def set_permission(
    org_id: uuid.UUID,
    permission_id: uuid.UUID,
    body: PermissionToggle,
    user: User = Depends(get_current_user),
    svc: OrganizationService = Depends(_svc),
):
    return await svc.set_permission(user, org_id, permission_id, body.allowed)
