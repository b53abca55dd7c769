"""Initial schema: users, organizations, RBAC, projects, test artifacts, comments, activity

Learn: Enum columns are plain VARCHAR(32) (the models use
native_enum=False), so adding a role or status later is a code change,
not an ALTER TYPE migration.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ─── Users / organizations ───────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("avatar_url", sa.String(500)),
        sa.Column("auth_provider", sa.String(32), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("max_projects", sa.Integer(), nullable=False),
        sa.Column("max_test_cases_per_project", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "organization_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id", sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_org_members"),
    )
    op.create_index("idx_org_members_user", "organization_members", ["user_id"])
    op.create_table(
        "rbac_permissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id", sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("object_type", sa.String(32), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("allowed", sa.Boolean(), nullable=False),
        sa.UniqueConstraint(
            "organization_id", "role", "object_type", "action", name="uq_rbac_permissions"
        ),
    )

    # ─── Projects and test artifacts ─────────────────────
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id", sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500)),
        *_timestamps(),
    )
    op.create_index("idx_projects_org", "projects", ["organization_id"])
    op.create_table(
        "test_cases",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "project_id", sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("preconditions", JSONType, nullable=False),
        sa.Column("test_type", sa.String(32), nullable=False),
        sa.Column("steps", JSONType, nullable=False),
        sa.Column("gherkin_syntax", sa.Text()),
        sa.Column("debug_flag", sa.Boolean(), nullable=False),
        sa.Column("debug_flagged_at", sa.DateTime(timezone=True)),
        sa.Column(
            "debug_flagged_by_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL")
        ),
        sa.Column("last_run_status", sa.String(32), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True)),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_test_cases_project", "test_cases", ["project_id"])
    op.create_index(
        "idx_test_cases_project_status", "test_cases", ["project_id", "last_run_status"]
    )
    op.create_table(
        "test_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "test_case_id", sa.Uuid(),
            sa.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("executed_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("environment", sa.String(100), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("duration", sa.Integer()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index(
        "idx_test_runs_case_executed", "test_runs", ["test_case_id", "executed_at"]
    )

    for group, link, fk in (
        ("test_suites", "test_suite_cases", "test_suite_id"),
        ("test_plans", "test_plan_cases", "test_plan_id"),
    ):
        extra = (
            [sa.Column("suite_type", sa.String(50), nullable=False)]
            if group == "test_suites"
            else [
                sa.Column(name, sa.Text())
                for name in ("scope", "schedule", "test_types", "entry_criteria", "exit_criteria")
            ]
        )
        op.create_table(
            group,
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column(
                "project_id", sa.Uuid(),
                sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("description", sa.Text()),
            *extra,
            sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
            *_timestamps(),
        )
        op.create_table(
            link,
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column(
                fk, sa.Uuid(), sa.ForeignKey(f"{group}.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column(
                "test_case_id", sa.Uuid(),
                sa.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.UniqueConstraint(fk, "test_case_id", name=f"uq_{link}"),
        )

    # ─── Comments and activity ───────────────────────────
    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("commentable_type", sa.String(32), nullable=False),
        sa.Column("commentable_id", sa.String(64), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_comments_target", "comments", ["commentable_type", "commentable_id"])
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("action_type", sa.String(32), nullable=False),
        sa.Column("object_type", sa.String(50), nullable=False),
        sa.Column("object_id", sa.String(64), nullable=False),
        sa.Column("changes", JSONType),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_activity_user_time", "activity_logs", ["user_id", "timestamp"])
    op.create_index("idx_activity_object", "activity_logs", ["object_type", "object_id"])


def downgrade() -> None:
    for table in (
        "activity_logs",
        "comments",
        "test_plan_cases",
        "test_plans",
        "test_suite_cases",
        "test_suites",
        "test_runs",
        "test_cases",
        "projects",
        "rbac_permissions",
        "organization_members",
        "organizations",
        "users",
    ):
        op.drop_table(table)
