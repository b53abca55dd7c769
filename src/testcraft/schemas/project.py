"""Pydantic schemas for projects and project-level reporting."""

import uuid
from datetime import date, datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from testcraft.db.models import TestRunStatus


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class ProjectCreateWithOrg(ProjectCreate):
    organization_id: uuid.UUID


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class ProjectRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectStats(BaseModel):
    total_test_cases: int
    pass_rate: int  # percent of executed cases whose last run passed
    recent_runs: int  # runs in the last 7 days
    debug_flagged: int


# ─── Reports ────────────────────────────────────────────


class TrendPoint(BaseModel):
    date: date  # UTC day, or the Monday of the week for long spans
    total_executed: int
    pass_count: int
    fail_count: int
    pass_rate: int


class ExecutionTrend(BaseModel):
    trend: list[TrendPoint]


class StatusCount(BaseModel):
    status: TestRunStatus
    count: int
    percentage: int


class StatusBreakdown(BaseModel):
    breakdown: list[StatusCount]
    total: int


class EnvironmentSummary(BaseModel):
    environment: str
    total_runs: int
    pass_count: int
    fail_count: int
    pass_rate: int


class EnvironmentComparison(BaseModel):
    environments: list[EnvironmentSummary]


class _CaseTally(BaseModel):
    test_case_id: uuid.UUID
    test_case_name: str
    total_runs: int
    pass_count: int
    fail_count: int
    debug_flag: bool


class FlakyCase(_CaseTally):
    flakiness_score: int  # percent of runs that failed
    last_run_at: Optional[datetime] = None


class FailingCase(_CaseTally):
    fail_rate: int
    last_failed_at: Optional[datetime] = None


class TestAnalysis(BaseModel):
    __test__ = False

    type: Literal["flaky", "top-failing"]
    tests: list[Union[FlakyCase, FailingCase]]
