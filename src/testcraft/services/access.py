"""Access service — membership gate and RBAC evaluator.

Learn: Every protected operation answers two questions before touching
data:

1. Is the caller a member of the organization that owns the target?
   (OrganizationMember lookup on the unique (organization_id, user_id) key)
2. For edits/deletes of test artifacts: does the caller's role allow this
   (object type, action) in that organization's RBAC matrix?

Resolution order for (2):
    no membership                          → deny
    ORGANIZATION_MANAGER / PROJECT_MANAGER → allow
    matching RbacPermission row            → row.allowed
    no row                                 → deny

The `*_with_org` helpers walk a target up to its organization and raise
NotFoundError before any authorization decision is made.
"""

import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.db.models import (
    ObjectType,
    OrganizationMember,
    OrgRole,
    Project,
    RbacAction,
    RbacPermission,
    TestCase,
    TestRun,
)
from testcraft.errors import AuthorizationError, NotFoundError

# Roles that bypass the RBAC matrix entirely.
RBAC_BYPASS_ROLES = frozenset({OrgRole.ORGANIZATION_MANAGER, OrgRole.PROJECT_MANAGER})

# Roles allowed to create and update projects.
PROJECT_ADMIN_ROLES = (OrgRole.ORGANIZATION_MANAGER, OrgRole.PROJECT_MANAGER)

PERMISSION_DENIED = "You do not have permission to perform this action"


def default_permission_matrix() -> list[tuple[OrgRole, ObjectType, RbacAction, bool]]:
    """The matrix seeded into every new organization.

    Managers may do everything; product owners and QA engineers may read and
    edit; developers may only read.
    """
    allowed_actions = {
        OrgRole.ORGANIZATION_MANAGER: {RbacAction.READ, RbacAction.EDIT, RbacAction.DELETE},
        OrgRole.PROJECT_MANAGER: {RbacAction.READ, RbacAction.EDIT, RbacAction.DELETE},
        OrgRole.PRODUCT_OWNER: {RbacAction.READ, RbacAction.EDIT},
        OrgRole.QA_ENGINEER: {RbacAction.READ, RbacAction.EDIT},
        OrgRole.DEVELOPER: {RbacAction.READ},
    }
    return [
        (role, object_type, action, action in allowed_actions[role])
        for role in OrgRole
        for object_type in ObjectType
        for action in RbacAction
    ]


class AccessService:
    """Membership and permission checks scoped to one DB session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Membership gate ────────────────────────────────

    async def check_membership(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[OrganizationMember]:
        result = await self.db.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user_id,
            )
        )
        return result.scalars().first()

    async def require_membership(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        detail: str = "You are not a member of this organization",
    ) -> OrganizationMember:
        member = await self.check_membership(user_id, organization_id)
        if member is None:
            raise AuthorizationError(detail)
        return member

    async def require_role(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        roles: Iterable[OrgRole],
        detail: str = "Insufficient permissions",
    ) -> OrganizationMember:
        """Membership whose role is one of `roles`, else AuthorizationError."""
        member = await self.check_membership(user_id, organization_id)
        if member is None or member.role not in tuple(roles):
            raise AuthorizationError(detail)
        return member

    # ─── RBAC evaluator ─────────────────────────────────

    async def check_permission(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        object_type: ObjectType,
        action: RbacAction,
    ) -> bool:
        member = await self.check_membership(user_id, organization_id)
        if member is None:
            return False
        if member.role in RBAC_BYPASS_ROLES:
            return True

        result = await self.db.execute(
            select(RbacPermission.allowed).where(
                RbacPermission.organization_id == organization_id,
                RbacPermission.role == member.role,
                RbacPermission.object_type == object_type,
                RbacPermission.action == action,
            )
        )
        allowed = result.scalars().first()
        return bool(allowed)

    async def require_permission(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        object_type: ObjectType,
        action: RbacAction,
    ) -> None:
        if not await self.check_permission(user_id, organization_id, object_type, action):
            raise AuthorizationError(PERMISSION_DENIED)

    # ─── Target → organization ──────────────────────────

    async def project_or_404(self, project_id: uuid.UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def test_case_with_org(self, test_case_id: uuid.UUID) -> tuple[TestCase, uuid.UUID]:
        row = (
            await self.db.execute(
                select(TestCase, Project.organization_id)
                .join(Project, Project.id == TestCase.project_id)
                .where(TestCase.id == test_case_id)
            )
        ).first()
        if row is None:
            raise NotFoundError("Test case not found")
        return row[0], row[1]

    async def test_run_with_org(self, run_id: int) -> tuple[TestRun, uuid.UUID]:
        row = (
            await self.db.execute(
                select(TestRun, Project.organization_id)
                .join(TestCase, TestCase.id == TestRun.test_case_id)
                .join(Project, Project.id == TestCase.project_id)
                .where(TestRun.id == run_id)
            )
        ).first()
        if row is None:
            raise NotFoundError("Test run not found")
        return row[0], row[1]

