"""Organization service — organizations, members, and the RBAC matrix.

Learn: Service layer separates business logic from HTTP routing.
API routes call services, services call the database. Each mutating
method authorizes, writes, commits, and only then hands an audit entry
to the ActivityRecorder.
"""

import uuid

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from testcraft.activity import types as audit
from testcraft.activity.recorder import ActivityRecorder
from testcraft.db.models import (
    ActivityAction,
    Organization,
    OrganizationMember,
    OrgRole,
    Project,
    RbacPermission,
    User,
    UserStatus,
)
from testcraft.errors import ConflictError, NotFoundError, ValidationError
from testcraft.services.access import AccessService, default_permission_matrix

logger = structlog.get_logger()

MANAGER_ONLY = "Only organization managers can perform this action"


class OrganizationService:
    """Business logic for organizations and their membership."""

    def __init__(self, db: AsyncSession, activity: ActivityRecorder):
        self.db = db
        self.activity = activity
        self.access = AccessService(db)

    async def _require_manager(self, actor: User, org_id: uuid.UUID) -> OrganizationMember:
        await self._org_or_404(org_id)
        return await self.access.require_role(
            actor.id, org_id, [OrgRole.ORGANIZATION_MANAGER], detail=MANAGER_ONLY
        )

    async def _org_or_404(self, org_id: uuid.UUID) -> Organization:
        org = await self.db.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    # ─── Organizations ──────────────────────────────────

    async def create_org(self, actor: User, name: str) -> Organization:
        """Create an organization, make the creator its manager, seed RBAC.

        Learn: Seeding the full default matrix up front means the RBAC
        evaluator never has to guess: a missing row is a deny.
        """
        org = Organization(name=name)
        self.db.add(org)
        await self.db.flush()

        self.db.add(
            OrganizationMember(
                organization_id=org.id,
                user_id=actor.id,
                role=OrgRole.ORGANIZATION_MANAGER,
            )
        )
        for role, object_type, action, allowed in default_permission_matrix():
            self.db.add(
                RbacPermission(
                    organization_id=org.id,
                    role=role,
                    object_type=object_type,
                    action=action,
                    allowed=allowed,
                )
            )
        await self.db.commit()

        logger.info("organization.created", org_id=str(org.id), user_id=str(actor.id))
        await self.activity.record(
            actor.id, ActivityAction.CREATED, audit.ORGANIZATION, org.id, {"name": name}
        )
        return org

    async def list_orgs(self, actor: User) -> list[dict]:
        """Organizations the actor belongs to, newest first, with counts."""
        member_count = (
            select(func.count(OrganizationMember.id))
            .where(OrganizationMember.organization_id == Organization.id)
            .correlate(Organization)
            .scalar_subquery()
        )
        project_count = (
            select(func.count(Project.id))
            .where(Project.organization_id == Organization.id)
            .correlate(Organization)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(Organization, OrganizationMember.role, member_count, project_count)
            .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
            .where(OrganizationMember.user_id == actor.id)
            .order_by(Organization.created_at.desc())
        )
        return [
            {
                "id": org.id,
                "name": org.name,
                "max_projects": org.max_projects,
                "max_test_cases_per_project": org.max_test_cases_per_project,
                "created_at": org.created_at,
                "updated_at": org.updated_at,
                "role": role,
                "member_count": members,
                "project_count": projects,
            }
            for org, role, members, projects in result.all()
        ]

    async def get_org(self, actor: User, org_id: uuid.UUID) -> Organization:
        await self.access.require_membership(actor.id, org_id)
        result = await self.db.execute(
            select(Organization)
            .where(Organization.id == org_id)
            .options(
                selectinload(Organization.members).selectinload(OrganizationMember.user),
                selectinload(Organization.projects),
            )
        )
        org = result.scalars().first()
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    async def update_org(self, actor: User, org_id: uuid.UUID, changes: dict) -> Organization:
        await self._require_manager(actor, org_id)
        org = await self._org_or_404(org_id)
        for field, value in changes.items():
            setattr(org, field, value)
        await self.db.commit()

        await self.activity.record(
            actor.id, ActivityAction.UPDATED, audit.ORGANIZATION, org.id, changes
        )
        return org

    # ─── Members ────────────────────────────────────────

    async def list_members(self, actor: User, org_id: uuid.UUID) -> list[OrganizationMember]:
        await self.access.require_membership(actor.id, org_id)
        result = await self.db.execute(
            select(OrganizationMember)
            .where(OrganizationMember.organization_id == org_id)
            .options(selectinload(OrganizationMember.user))
            .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        )
        return list(result.scalars().all())

    async def _member_with_user(self, member_id: uuid.UUID) -> OrganizationMember:
        result = await self.db.execute(
            select(OrganizationMember)
            .where(OrganizationMember.id == member_id)
            .options(selectinload(OrganizationMember.user))
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    async def invite_member(
        self, actor: User, org_id: uuid.UUID, email: str, role: OrgRole
    ) -> OrganizationMember:
        """Add a user to the org by email.

        Unknown emails get a placeholder user in PENDING_INVITATION status,
        named after the local part of the address, who can register later.
        """
        await self._require_manager(actor, org_id)
        email = email.lower()

        user = (
            await self.db.execute(select(User).where(User.email == email))
        ).scalars().first()
        if user is None:
            user = User(
                email=email,
                name=email.split("@")[0],
                status=UserStatus.PENDING_INVITATION,
            )
            self.db.add(user)
            await self.db.flush()
        elif await self.access.check_membership(user.id, org_id):
            raise ConflictError("User is already a member of this organization")

        member = OrganizationMember(organization_id=org_id, user_id=user.id, role=role)
        self.db.add(member)
        await self.db.commit()

        await self.activity.record(
            actor.id,
            ActivityAction.CREATED,
            audit.ORGANIZATION_MEMBER,
            member.id,
            {"email": email, "role": role.value},
        )
        return await self._member_with_user(member.id)

    async def _target_member(self, org_id: uuid.UUID, member_id: uuid.UUID) -> OrganizationMember:
        member = await self.db.get(OrganizationMember, member_id)
        if member is None or member.organization_id != org_id:
            raise NotFoundError("Member not found")
        return member

    async def update_member_role(
        self, actor: User, org_id: uuid.UUID, member_id: uuid.UUID, role: OrgRole
    ) -> OrganizationMember:
        await self._require_manager(actor, org_id)
        member = await self._target_member(org_id, member_id)
        member.role = role
        await self.db.commit()

        await self.activity.record(
            actor.id,
            ActivityAction.UPDATED,
            audit.ORGANIZATION_MEMBER,
            member.id,
            {"role": role.value},
        )
        return await self._member_with_user(member.id)

    async def remove_member(
        self, actor: User, org_id: uuid.UUID, member_id: uuid.UUID
    ) -> None:
        """Remove a member. A manager cannot remove themselves if they are the last one."""
        await self._require_manager(actor, org_id)
        member = await self._target_member(org_id, member_id)
        removed_user_id = member.user_id

        if removed_user_id == actor.id:
            managers = await self.db.scalar(
                select(func.count(OrganizationMember.id)).where(
                    OrganizationMember.organization_id == org_id,
                    OrganizationMember.role == OrgRole.ORGANIZATION_MANAGER,
                )
            )
            if managers <= 1:
                raise ValidationError("Cannot remove the last organization manager")

        await self.db.execute(
            delete(OrganizationMember).where(OrganizationMember.id == member.id)
        )
        await self.db.commit()

        await self.activity.record(
            actor.id,
            ActivityAction.DELETED,
            audit.ORGANIZATION_MEMBER,
            member_id,
            {"user_id": str(removed_user_id)},
        )

    # ─── RBAC matrix ────────────────────────────────────

    async def list_permissions(self, actor: User, org_id: uuid.UUID) -> list[RbacPermission]:
        await self._require_manager(actor, org_id)
        result = await self.db.execute(
            select(RbacPermission)
            .where(RbacPermission.organization_id == org_id)
            .order_by(RbacPermission.role, RbacPermission.object_type, RbacPermission.action)
        )
        return list(result.scalars().all())

    async def upsert_permissions(
        self, actor: User, org_id: uuid.UUID, entries: list[dict]
    ) -> list[RbacPermission]:
        """Set many matrix cells at once, creating rows that don't exist yet."""
        await self._require_manager(actor, org_id)

        for entry in entries:
            existing = (
                await self.db.execute(
                    select(RbacPermission).where(
                        RbacPermission.organization_id == org_id,
                        RbacPermission.role == entry["role"],
                        RbacPermission.object_type == entry["object_type"],
                        RbacPermission.action == entry["action"],
                    )
                )
            ).scalars().first()
            if existing:
                existing.allowed = entry["allowed"]
            else:
                self.db.add(RbacPermission(organization_id=org_id, **entry))
            await self.db.flush()
        await self.db.commit()

        await self.activity.record(
            actor.id,
            ActivityAction.UPDATED,
            audit.RBAC_PERMISSION,
            org_id,
            {"updated_permissions": len(entries)},
        )
        return await self.list_permissions(actor, org_id)

    async def set_permission(
        self, actor: User, org_id: uuid.UUID, permission_id: uuid.UUID, allowed: bool
    ) -> RbacPermission:
        await self._require_manager(actor, org_id)
        permission = await self.db.get(RbacPermission, permission_id)
        if permission is None or permission.organization_id != org_id:
            raise NotFoundError("Permission not found")
        permission.allowed = allowed
        await self.db.commit()

        await self.activity.record(
            actor.id,
            ActivityAction.UPDATED,
            audit.RBAC_PERMISSION,
            permission.id,
            {"allowed": allowed},
        )
        return permission
