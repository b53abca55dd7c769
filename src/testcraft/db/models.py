"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys for tenant-facing entities, integer ids for the
  append-heavy tables (runs, comments, activity) where insertion order matters
- Portable column types (Uuid, JSON with a JSONB variant) so the same models
  run on PostgreSQL in production and SQLite in tests
- Enums are stored as short strings (native_enum=False), not PG enum types
- ON DELETE CASCADE on every ownership edge; deletes are single statements
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum(cls: type[enum.Enum]) -> SAEnum:
    return SAEnum(cls, native_enum=False, length=32, validate_strings=True)


# ══════════════════════════════════════════════════════════════
# Enumerations
# ══════════════════════════════════════════════════════════════


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING_INVITATION = "PENDING_INVITATION"


class AuthProvider(str, enum.Enum):
    EMAIL = "EMAIL"
    GOOGLE = "GOOGLE"
    FACEBOOK = "FACEBOOK"


class OrgRole(str, enum.Enum):
    ORGANIZATION_MANAGER = "ORGANIZATION_MANAGER"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    PRODUCT_OWNER = "PRODUCT_OWNER"
    QA_ENGINEER = "QA_ENGINEER"
    DEVELOPER = "DEVELOPER"


class ObjectType(str, enum.Enum):
    TEST_SUITE = "TEST_SUITE"
    TEST_PLAN = "TEST_PLAN"
    TEST_CASE = "TEST_CASE"
    TEST_RUN = "TEST_RUN"
    REPORT = "REPORT"


class RbacAction(str, enum.Enum):
    READ = "READ"
    EDIT = "EDIT"
    DELETE = "DELETE"


class TestType(str, enum.Enum):
    __test__ = False

    STEP_BASED = "STEP_BASED"
    GHERKIN = "GHERKIN"


class TestRunStatus(str, enum.Enum):
    __test__ = False

    NOT_RUN = "NOT_RUN"
    IN_PROGRESS = "IN_PROGRESS"
    PASS = "PASS"
    FAIL = "FAIL"
    BLOCKED = "BLOCKED"
    SKIPPED = "SKIPPED"


class CommentableType(str, enum.Enum):
    TEST_CASE = "TEST_CASE"
    TEST_RUN = "TEST_RUN"


class ActivityAction(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


# ══════════════════════════════════════════════════════════════
# Users, Organizations, Membership, RBAC
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person who can sign in (or has been invited to).

    Invited users exist before they register: status PENDING_INVITATION and
    no password hash. Users are never hard-deleted; admins suspend them.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    auth_provider: Mapped[AuthProvider] = mapped_column(
        _enum(AuthProvider), nullable=False, default=AuthProvider.EMAIL
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[UserStatus] = mapped_column(
        _enum(UserStatus), nullable=False, default=UserStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class Organization(Base):
    """Tenant root. Owns projects, members and its own RBAC matrix."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    max_projects: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    max_test_cases_per_project: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1000
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    members: Mapped[list["OrganizationMember"]] = relationship(
        back_populates="organization", passive_deletes=True
    )
    projects: Mapped[list["Project"]] = relationship(
        back_populates="organization", passive_deletes=True
    )


class OrganizationMember(Base):
    """A user's role inside one organization.

    Learn: (organization_id, user_id) is unique, so "is this user a member"
    is a single indexed lookup. Every authorization decision starts here.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_members"),
        Index("idx_org_members_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[OrgRole] = mapped_column(_enum(OrgRole), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    organization: Mapped["Organization"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship()


class RbacPermission(Base):
    """One cell of an organization's permission matrix."""

    __tablename__ = "rbac_permissions"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "role", "object_type", "action",
            name="uq_rbac_permissions",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[OrgRole] = mapped_column(_enum(OrgRole), nullable=False)
    object_type: Mapped[ObjectType] = mapped_column(_enum(ObjectType), nullable=False)
    action: Mapped[RbacAction] = mapped_column(_enum(RbacAction), nullable=False)
    allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# ══════════════════════════════════════════════════════════════
# Projects and test artifacts
# ══════════════════════════════════════════════════════════════


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (Index("idx_projects_org", "organization_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    organization: Mapped["Organization"] = relationship(back_populates="projects")


class TestCase(Base):
    """A single test case.

    Learn: last_run_status / last_run_at are a cache of the newest TestRun.
    Only services.run_status writes them, inside the same transaction as
    the run mutation, so the cache never drifts from the history.
    """

    __test__ = False
    __tablename__ = "test_cases"
    __table_args__ = (
        Index("idx_test_cases_project", "project_id"),
        Index("idx_test_cases_project_status", "project_id", "last_run_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    preconditions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    test_type: Mapped[TestType] = mapped_column(
        _enum(TestType), nullable=False, default=TestType.STEP_BASED
    )
    steps: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    gherkin_syntax: Mapped[Optional[str]] = mapped_column(Text)
    debug_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    debug_flagged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    debug_flagged_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    last_run_status: Mapped[TestRunStatus] = mapped_column(
        _enum(TestRunStatus), nullable=False, default=TestRunStatus.NOT_RUN
    )
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    project: Mapped["Project"] = relationship()


class TestRun(Base):
    """One execution of a test case in an environment."""

    __test__ = False
    __tablename__ = "test_runs"
    __table_args__ = (
        Index("idx_test_runs_case_executed", "test_case_id", "executed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_case_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False
    )
    executed_by_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    environment: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[TestRunStatus] = mapped_column(_enum(TestRunStatus), nullable=False)
    duration: Mapped[Optional[int]] = mapped_column(Integer)  # seconds
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    test_case: Mapped["TestCase"] = relationship()


class TestSuite(Base):
    __test__ = False
    __tablename__ = "test_suites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    suite_type: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    links: Mapped[list["TestSuiteCase"]] = relationship(passive_deletes=True)


class TestSuiteCase(Base):
    __test__ = False
    __tablename__ = "test_suite_cases"
    __table_args__ = (
        UniqueConstraint("test_suite_id", "test_case_id", name="uq_test_suite_cases"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    test_suite_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("test_suites.id", ondelete="CASCADE"), nullable=False
    )
    test_case_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False
    )

    test_case: Mapped["TestCase"] = relationship()


class TestPlan(Base):
    __test__ = False
    __tablename__ = "test_plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    scope: Mapped[Optional[str]] = mapped_column(Text)
    schedule: Mapped[Optional[str]] = mapped_column(Text)
    test_types: Mapped[Optional[str]] = mapped_column(Text)
    entry_criteria: Mapped[Optional[str]] = mapped_column(Text)
    exit_criteria: Mapped[Optional[str]] = mapped_column(Text)
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    links: Mapped[list["TestPlanCase"]] = relationship(passive_deletes=True)


class TestPlanCase(Base):
    __test__ = False
    __tablename__ = "test_plan_cases"
    __table_args__ = (
        UniqueConstraint("test_plan_id", "test_case_id", name="uq_test_plan_cases"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    test_plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("test_plans.id", ondelete="CASCADE"), nullable=False
    )
    test_case_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False
    )

    test_case: Mapped["TestCase"] = relationship()


# ══════════════════════════════════════════════════════════════
# Comments and activity
# ══════════════════════════════════════════════════════════════


class Comment(Base):
    """A comment on a test case or a test run.

    The target is polymorphic (commentable_type + commentable_id), so there
    is no FK to it; the service deletes comments along with their target.
    """

    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_target", "commentable_type", "commentable_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    commentable_type: Mapped[CommentableType] = mapped_column(
        _enum(CommentableType), nullable=False
    )
    commentable_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    author: Mapped["User"] = relationship()


class ActivityLog(Base):
    """Append-only audit trail. The application never updates or deletes rows.

    Learn: object_type is a free-form entity name ("TestCase",
    "OrganizationMember", ...) rather than the RBAC ObjectType enum, since
    organizations, members and permissions are audited too.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_user_time", "user_id", "timestamp"),
        Index("idx_activity_object", "object_type", "object_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    action_type: Mapped[ActivityAction] = mapped_column(
        _enum(ActivityAction), nullable=False
    )
    object_type: Mapped[str] = mapped_column(String(50), nullable=False)
    object_id: Mapped[str] = mapped_column(String(64), nullable=False)
    changes: Mapped[Optional[dict]] = mapped_column(JSONType)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
