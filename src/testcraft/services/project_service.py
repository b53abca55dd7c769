"""Project service — projects plus the project-scoped listings, stats and reports.

Learn: Reports aggregate *finished* runs (anything but NOT_RUN and
IN_PROGRESS) of one project. All four share ReportFilter, which narrows
by time window and optionally by the cases linked to one suite or plan.
Counting happens in SQL (GROUP BY); only the shaping of buckets and
rankings is done in Python.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Literal, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.activity import types as audit
from testcraft.activity.recorder import ActivityRecorder
from testcraft.db.models import (
    ActivityAction,
    Organization,
    OrgRole,
    Project,
    TestCase,
    TestPlan,
    TestPlanCase,
    TestRun,
    TestRunStatus,
    TestSuite,
    TestSuiteCase,
    TestType,
    User,
)
from testcraft.errors import NotFoundError, ValidationError
from testcraft.services.access import PROJECT_ADMIN_ROLES, AccessService
from testcraft.services.comment_service import delete_comments_for_cases

DEFAULT_ENVIRONMENTS = ("development", "staging", "production", "qa")

NO_PROJECT_ACCESS = "You do not have access to this project"


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _percent(part: int, whole: int) -> int:
    """Whole percent, halves rounded up (1 of 8 is 13)."""
    return (part * 200 + whole) // (whole * 2) if whole else 0


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive values; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ─── Report filters ─────────────────────────────────────

TimeRange = Literal["24h", "3d", "7d", "all", "custom"]
ReportScope = Literal["test-plan", "test-suite"]

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "3d": timedelta(days=3),
    "7d": timedelta(days=7),
}
UNFINISHED = (TestRunStatus.NOT_RUN, TestRunStatus.IN_PROGRESS)
WEEKLY_BUCKETS_AFTER = timedelta(days=90)
MAX_ANALYSIS_LIMIT = 50


@dataclass
class ReportFilter:
    time_range: TimeRange = "all"
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    scope: Optional[ReportScope] = None
    scope_id: Optional[uuid.UUID] = None

    def conditions(self, project_id: uuid.UUID, now: Optional[datetime] = None) -> list:
        """WHERE clauses over TestRun joined to TestCase."""
        clauses = [TestCase.project_id == project_id, TestRun.status.not_in(UNFINISHED)]

        if self.time_range in TIME_RANGES:
            since = (now or datetime.now(timezone.utc)) - TIME_RANGES[self.time_range]
            clauses.append(TestRun.executed_at >= since)
        elif self.time_range == "custom" and self.date_from is not None:
            clauses.append(TestRun.executed_at >= _as_utc(self.date_from))
            if self.date_to is not None:
                clauses.append(TestRun.executed_at <= _as_utc(self.date_to))

        if self.scope_id is not None:
            if self.scope == "test-plan":
                linked = select(TestPlanCase.test_case_id).where(
                    TestPlanCase.test_plan_id == self.scope_id
                )
                clauses.append(TestCase.id.in_(linked))
            elif self.scope == "test-suite":
                linked = select(TestSuiteCase.test_case_id).where(
                    TestSuiteCase.test_suite_id == self.scope_id
                )
                clauses.append(TestCase.id.in_(linked))
        return clauses


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _tally(rows) -> dict:
    """Fold (key, status, count) rows into per-key run, PASS and FAIL totals."""
    tallies: dict = defaultdict(lambda: {"total_runs": 0, "pass_count": 0, "fail_count": 0})
    for key, status, n in rows:
        tally = tallies[key]
        tally["total_runs"] += n
        if status == TestRunStatus.PASS:
            tally["pass_count"] += n
        elif status == TestRunStatus.FAIL:
            tally["fail_count"] += n
    return tallies


class ProjectService:
    """Business logic for projects."""

    def __init__(self, db: AsyncSession, activity: ActivityRecorder):
        self.db = db
        self.activity = activity
        self.access = AccessService(db)

    async def _project_for_member(self, actor: User, project_id: uuid.UUID) -> Project:
        project = await self.access.project_or_404(project_id)
        await self.access.require_membership(
            actor.id, project.organization_id, detail=NO_PROJECT_ACCESS
        )
        return project

    async def _page(self, query, page: int, limit: int) -> tuple[list, int]:
        total = await self.db.scalar(
            select(func.count()).select_from(query.order_by(None).subquery())
        )
        result = await self.db.execute(query.offset((page - 1) * limit).limit(limit))
        return list(result.scalars().all()), total or 0

    # ─── CRUD ───────────────────────────────────────────

    async def create_project(
        self,
        actor: User,
        org_id: uuid.UUID,
        name: str,
        description: Optional[str] = None,
    ) -> Project:
        org = await self.db.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Organization not found")
        await self.access.require_role(
            actor.id,
            org_id,
            PROJECT_ADMIN_ROLES,
            detail="Insufficient permissions to create projects",
        )

        count = await self.db.scalar(
            select(func.count(Project.id)).where(Project.organization_id == org_id)
        )
        if count >= org.max_projects:
            raise ValidationError(
                f"Organization has reached the maximum of {org.max_projects} projects"
            )

        project = Project(organization_id=org_id, name=name, description=description)
        self.db.add(project)
        await self.db.commit()

        await self.activity.record(
            actor.id, ActivityAction.CREATED, audit.PROJECT, project.id, {"name": name}
        )
        return project

    async def list_projects(self, actor: User, org_id: uuid.UUID) -> list[Project]:
        await self.access.require_membership(actor.id, org_id)
        result = await self.db.execute(
            select(Project)
            .where(Project.organization_id == org_id)
            .order_by(Project.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_project(self, actor: User, project_id: uuid.UUID) -> Project:
        return await self._project_for_member(actor, project_id)

    async def update_project(self, actor: User, project_id: uuid.UUID, changes: dict) -> Project:
        project = await self.access.project_or_404(project_id)
        await self.access.require_role(
            actor.id,
            project.organization_id,
            PROJECT_ADMIN_ROLES,
            detail="Insufficient permissions to update this project",
        )
        for field, value in changes.items():
            setattr(project, field, value)
        await self.db.commit()

        await self.activity.record(
            actor.id, ActivityAction.UPDATED, audit.PROJECT, project.id, changes
        )
        return project

    async def delete_project(self, actor: User, project_id: uuid.UUID) -> None:
        project = await self.access.project_or_404(project_id)
        name = project.name
        await self.access.require_role(
            actor.id,
            project.organization_id,
            [OrgRole.ORGANIZATION_MANAGER],
            detail="Only organization managers can delete projects",
        )
        case_ids = list(
            (
                await self.db.execute(
                    select(TestCase.id).where(TestCase.project_id == project_id)
                )
            ).scalars()
        )
        await delete_comments_for_cases(self.db, case_ids)
        await self.db.execute(delete(Project).where(Project.id == project_id))
        await self.db.commit()

        await self.activity.record(
            actor.id, ActivityAction.DELETED, audit.PROJECT, project_id, {"name": name}
        )

    # ─── Listings ───────────────────────────────────────

    async def list_test_cases(
        self,
        actor: User,
        project_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        status: Optional[TestRunStatus] = None,
        test_type: Optional[TestType] = None,
        debug_flag: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> tuple[list[TestCase], int]:
        await self._project_for_member(actor, project_id)

        query = select(TestCase).where(TestCase.project_id == project_id)
        if status is not None:
            query = query.where(TestCase.last_run_status == status)
        if test_type is not None:
            query = query.where(TestCase.test_type == test_type)
        if debug_flag is not None:
            query = query.where(TestCase.debug_flag == debug_flag)
        if search:
            pattern = f"%{_escape_like(search)}%"
            query = query.where(
                or_(
                    TestCase.name.ilike(pattern, escape="\\"),
                    TestCase.description.ilike(pattern, escape="\\"),
                )
            )
        query = query.order_by(TestCase.created_at.desc(), TestCase.id)
        return await self._page(query, page, limit)

    async def list_test_runs(
        self,
        actor: User,
        project_id: uuid.UUID,
        page: int = 1,
        limit: int = 20,
        status: Optional[TestRunStatus] = None,
        environment: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> tuple[list[TestRun], int]:
        await self._project_for_member(actor, project_id)

        query = (
            select(TestRun)
            .join(TestCase, TestCase.id == TestRun.test_case_id)
            .where(TestCase.project_id == project_id)
        )
        if status is not None:
            query = query.where(TestRun.status == status)
        if environment:
            query = query.where(
                TestRun.environment.ilike(f"%{_escape_like(environment)}%", escape="\\")
            )
        if date_from is not None:
            query = query.where(TestRun.executed_at >= date_from)
        if date_to is not None:
            query = query.where(TestRun.executed_at <= date_to)
        query = query.order_by(TestRun.executed_at.desc(), TestRun.id.desc())
        return await self._page(query, page, limit)

    async def list_test_suites(
        self, actor: User, project_id: uuid.UUID, page: int = 1, limit: int = 20
    ) -> tuple[list[TestSuite], int]:
        await self._project_for_member(actor, project_id)
        query = (
            select(TestSuite)
            .where(TestSuite.project_id == project_id)
            .order_by(TestSuite.created_at.desc(), TestSuite.id)
        )
        return await self._page(query, page, limit)

    async def list_test_plans(
        self, actor: User, project_id: uuid.UUID, page: int = 1, limit: int = 20
    ) -> tuple[list[TestPlan], int]:
        await self._project_for_member(actor, project_id)
        query = (
            select(TestPlan)
            .where(TestPlan.project_id == project_id)
            .order_by(TestPlan.created_at.desc(), TestPlan.id)
        )
        return await self._page(query, page, limit)

    # ─── Reporting ──────────────────────────────────────

    async def stats(self, actor: User, project_id: uuid.UUID) -> dict:
        """Headline numbers for the project dashboard.

        pass_rate is the share of *executed* cases (last status other than
        NOT_RUN) whose last run passed, rounded to a whole percent.
        """
        await self._project_for_member(actor, project_id)

        in_project = TestCase.project_id == project_id
        total = await self.db.scalar(select(func.count(TestCase.id)).where(in_project))
        executed = await self.db.scalar(
            select(func.count(TestCase.id)).where(
                in_project, TestCase.last_run_status != TestRunStatus.NOT_RUN
            )
        )
        passed = await self.db.scalar(
            select(func.count(TestCase.id)).where(
                in_project, TestCase.last_run_status == TestRunStatus.PASS
            )
        )
        flagged = await self.db.scalar(
            select(func.count(TestCase.id)).where(in_project, TestCase.debug_flag.is_(True))
        )
        since = datetime.now(timezone.utc) - timedelta(days=7)
        recent = await self.db.scalar(
            select(func.count(TestRun.id))
            .join(TestCase, TestCase.id == TestRun.test_case_id)
            .where(in_project, TestRun.executed_at >= since)
        )

        return {
            "total_test_cases": total or 0,
            "pass_rate": _percent(passed, executed or 0),
            "recent_runs": recent or 0,
            "debug_flagged": flagged or 0,
        }

    async def environments(self, actor: User, project_id: uuid.UUID) -> list[str]:
        """Default environments merged with every environment ever used here."""
        await self._project_for_member(actor, project_id)
        result = await self.db.execute(
            select(TestRun.environment)
            .join(TestCase, TestCase.id == TestRun.test_case_id)
            .where(TestCase.project_id == project_id)
            .distinct()
        )
        return sorted(set(DEFAULT_ENVIRONMENTS) | set(result.scalars().all()))

    # ─── Reports ────────────────────────────────────────

    async def _finished_runs(
        self, actor: User, project_id: uuid.UUID, filters: ReportFilter, *columns
    ):
        await self._project_for_member(actor, project_id)
        return (
            select(*columns)
            .join(TestCase, TestCase.id == TestRun.test_case_id)
            .where(*filters.conditions(project_id))
        )

    async def execution_trend(
        self, actor: User, project_id: uuid.UUID, filters: ReportFilter
    ) -> dict:
        """Per-day pass/fail counts; per-week once the runs span over 90 days."""
        query = await self._finished_runs(
            actor, project_id, filters, TestRun.executed_at, TestRun.status
        )
        rows = (await self.db.execute(query.order_by(TestRun.executed_at, TestRun.id))).all()
        if not rows:
            return {"trend": []}

        weekly = _as_utc(rows[-1].executed_at) - _as_utc(rows[0].executed_at) > WEEKLY_BUCKETS_AFTER
        days = ((_as_utc(executed_at).date(), status) for executed_at, status in rows)
        buckets = _tally((_week_start(day) if weekly else day, status, 1) for day, status in days)

        return {
            "trend": [
                {
                    "date": day,
                    "total_executed": t["total_runs"],
                    "pass_count": t["pass_count"],
                    "fail_count": t["fail_count"],
                    "pass_rate": _percent(t["pass_count"], t["total_runs"]),
                }
                for day, t in sorted(buckets.items())
            ]
        }

    async def status_breakdown(
        self, actor: User, project_id: uuid.UUID, filters: ReportFilter
    ) -> dict:
        query = await self._finished_runs(
            actor, project_id, filters, TestRun.status, func.count(TestRun.id)
        )
        counts = (await self.db.execute(query.group_by(TestRun.status))).all()
        total = sum(n for _, n in counts)
        ranked = sorted(counts, key=lambda row: (-row[1], row[0].value))
        return {
            "breakdown": [
                {"status": status, "count": n, "percentage": _percent(n, total)}
                for status, n in ranked
            ],
            "total": total,
        }

    async def environment_comparison(
        self, actor: User, project_id: uuid.UUID, filters: ReportFilter
    ) -> dict:
        query = await self._finished_runs(
            actor, project_id, filters, TestRun.environment, TestRun.status, func.count(TestRun.id)
        )
        rows = (await self.db.execute(query.group_by(TestRun.environment, TestRun.status))).all()

        per_env = _tally(rows)
        return {
            "environments": [
                {
                    "environment": environment,
                    **tally,
                    "pass_rate": _percent(tally["pass_count"], tally["total_runs"]),
                }
                for environment, tally in sorted(per_env.items())
            ]
        }

    async def test_analysis(
        self,
        actor: User,
        project_id: uuid.UUID,
        filters: ReportFilter,
        kind: Literal["flaky", "top-failing"],
        limit: int = 10,
    ) -> dict:
        """Rank cases by how unreliable their runs are.

        flaky:       cases with both PASS and FAIL runs, by share of FAILs
        top-failing: cases with any FAIL run, by number of FAILs
        """
        query = await self._finished_runs(
            actor, project_id, filters, TestRun.test_case_id, TestRun.status, func.count(TestRun.id)
        )
        rows = (await self.db.execute(query.group_by(TestRun.test_case_id, TestRun.status))).all()

        tallies = _tally(rows)

        limit = min(limit, MAX_ANALYSIS_LIMIT)
        if kind == "flaky":
            picked = [
                (case_id, t)
                for case_id, t in tallies.items()
                if t["pass_count"] and t["fail_count"]
            ]
            picked.sort(key=lambda item: (-_percent(item[1]["fail_count"], item[1]["total_runs"]),
                                          -item[1]["total_runs"], str(item[0])))
        else:
            picked = [(case_id, t) for case_id, t in tallies.items() if t["fail_count"]]
            picked.sort(key=lambda item: (-item[1]["fail_count"], -item[1]["total_runs"],
                                          str(item[0])))
        picked = picked[:limit]

        case_ids = [case_id for case_id, _ in picked]
        cases = {}
        if case_ids:
            result = await self.db.execute(select(TestCase).where(TestCase.id.in_(case_ids)))
            cases = {case.id: case for case in result.scalars().all()}

        def entry(case_id, tally, **extra) -> dict:
            case = cases[case_id]
            return {
                "test_case_id": case_id,
                "test_case_name": case.name,
                **tally,
                "debug_flag": case.debug_flag,
                **extra,
            }

        if kind == "flaky":
            tests = [
                entry(
                    case_id,
                    t,
                    flakiness_score=_percent(t["fail_count"], t["total_runs"]),
                    last_run_at=cases[case_id].last_run_at,
                )
                for case_id, t in picked
            ]
            return {"type": kind, "tests": tests}

        last_failed = {}
        if case_ids:
            result = await self.db.execute(
                select(TestRun.test_case_id, func.max(TestRun.executed_at))
                .where(TestRun.test_case_id.in_(case_ids), TestRun.status == TestRunStatus.FAIL)
                .group_by(TestRun.test_case_id)
            )
            last_failed = {case_id: _as_utc(at) for case_id, at in result.all()}

        tests = [
            entry(
                case_id,
                t,
                fail_rate=_percent(t["fail_count"], t["total_runs"]),
                last_failed_at=last_failed.get(case_id),
            )
            for case_id, t in picked
        ]
        return {"type": kind, "tests": tests}
