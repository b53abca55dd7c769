"""Project API routes: projects, project-scoped listings, stats and reports."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.activity.recorder import ActivityRecorder, get_activity_recorder
from testcraft.auth.dependencies import get_current_user
from testcraft.db.engine import get_db
from testcraft.db.models import TestRunStatus, TestType, User
from testcraft.schemas.common import Deleted, Page
from testcraft.schemas.project import (
    EnvironmentComparison,
    ExecutionTrend,
    ProjectCreate,
    ProjectCreateWithOrg,
    ProjectRead,
    ProjectStats,
    ProjectUpdate,
    StatusBreakdown,
    TestAnalysis,
)
from testcraft.schemas.test_case import TestCaseRead
from testcraft.schemas.test_run import TestRunRead
from testcraft.schemas.test_suite import TestPlanRead, TestSuiteRead
from testcraft.services.project_service import (
    MAX_ANALYSIS_LIMIT,
    ProjectService,
    ReportFilter,
    ReportScope,
    TimeRange,
)

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity_recorder),
) -> ProjectService:
    return ProjectService(db, activity)


# ─── Projects ───────────────────────────────────────────

@router.get("/organizations/{org_id}/projects", response_model=list[ProjectRead])
async def list_projects(
    org_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.list_projects(user, org_id)


@router.post("/organizations/{org_id}/projects", response_model=ProjectRead, status_code=201)
async def create_project(
    org_id: uuid.UUID,
    body: ProjectCreate,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.create_project(user, org_id, body.name, body.description)


@router.post("/projects", response_model=ProjectRead, status_code=201)
async def create_project_flat(
    body: ProjectCreateWithOrg,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    """Same as POST /organizations/:id/projects, with the org in the body."""
    return await svc.create_project(user, body.organization_id, body.name, body.description)


@router.get("/projects/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.get_project(user, project_id)


@router.put("/projects/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.update_project(user, project_id, body.model_dump(exclude_unset=True))


@router.delete("/projects/{project_id}", response_model=Deleted)
async def delete_project(
    project_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    await svc.delete_project(user, project_id)
    return Deleted()


# ─── Listings ───────────────────────────────────────────

@router.get("/projects/{project_id}/test-cases", response_model=Page[TestCaseRead])
async def list_test_cases(
    project_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[TestRunStatus] = None,
    test_type: Optional[TestType] = None,
    debug_flag: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=200),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    """Paged test cases. `status` filters on the case's last run status."""
    items, total = await svc.list_test_cases(
        user,
        project_id,
        page=page,
        limit=limit,
        status=status,
        test_type=test_type,
        debug_flag=debug_flag,
        search=search,
    )
    return Page[TestCaseRead].build(items, total, page, limit)


@router.get("/projects/{project_id}/test-runs", response_model=Page[TestRunRead])
async def list_test_runs(
    project_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[TestRunStatus] = None,
    environment: Optional[str] = Query(None, max_length=100),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    items, total = await svc.list_test_runs(
        user,
        project_id,
        page=page,
        limit=limit,
        status=status,
        environment=environment,
        date_from=date_from,
        date_to=date_to,
    )
    return Page[TestRunRead].build(items, total, page, limit)


@router.get("/projects/{project_id}/test-suites", response_model=Page[TestSuiteRead])
async def list_test_suites(
    project_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    items, total = await svc.list_test_suites(user, project_id, page=page, limit=limit)
    return Page[TestSuiteRead].build(items, total, page, limit)


@router.get("/projects/{project_id}/test-plans", response_model=Page[TestPlanRead])
async def list_test_plans(
    project_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    items, total = await svc.list_test_plans(user, project_id, page=page, limit=limit)
    return Page[TestPlanRead].build(items, total, page, limit)


# ─── Reporting ──────────────────────────────────────────

@router.get("/projects/{project_id}/stats", response_model=ProjectStats)
async def project_stats(
    project_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.stats(user, project_id)


@router.get("/projects/{project_id}/environments", response_model=list[str])
async def project_environments(
    project_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.environments(user, project_id)


# ─── Reports ────────────────────────────────────────────

def _report_filter(
    time_range: TimeRange = Query("all"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    scope: Optional[ReportScope] = Query(None),
    scope_id: Optional[uuid.UUID] = Query(None),
) -> ReportFilter:
    return ReportFilter(time_range, date_from, date_to, scope, scope_id)


@router.get("/projects/{project_id}/reports/execution-trend", response_model=ExecutionTrend)
async def execution_trend(
    project_id: uuid.UUID,
    filters: ReportFilter = Depends(_report_filter),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.execution_trend(user, project_id, filters)


@router.get("/projects/{project_id}/reports/status-breakdown", response_model=StatusBreakdown)
async def status_breakdown(
    project_id: uuid.UUID,
    filters: ReportFilter = Depends(_report_filter),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.status_breakdown(user, project_id, filters)


@router.get(
    "/projects/{project_id}/reports/environment-comparison",
    response_model=EnvironmentComparison,
)
async def environment_comparison(
    project_id: uuid.UUID,
    filters: ReportFilter = Depends(_report_filter),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.environment_comparison(user, project_id, filters)


@router.get("/projects/{project_id}/reports/test-analysis", response_model=TestAnalysis)
async def test_analysis(
    project_id: uuid.UUID,
    kind: Literal["flaky", "top-failing"] = Query(..., alias="type"),
    limit: int = Query(10, ge=1, le=MAX_ANALYSIS_LIMIT),
    filters: ReportFilter = Depends(_report_filter),
    user: User = Depends(get_current_user),
    svc: ProjectService = Depends(_svc),
):
    return await svc.test_analysis(user, project_id, filters, kind, limit)
