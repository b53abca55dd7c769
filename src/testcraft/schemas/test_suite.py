"""Pydantic schemas for test suites and test plans.

Suites and plans are both named groupings of a project's test cases;
plans add the scheduling and exit/entry criteria fields.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from testcraft.schemas.test_case import TestCaseRead


class CaseLink(BaseModel):
    test_case_id: uuid.UUID


# ─── Suites ─────────────────────────────────────────────

class TestSuiteCreate(BaseModel):
    __test__ = False

    project_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    suite_type: str = Field(..., min_length=1, max_length=50)


class TestSuiteUpdate(BaseModel):
    __test__ = False

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    suite_type: Optional[str] = Field(None, min_length=1, max_length=50)


class TestSuiteRead(BaseModel):
    __test__ = False

    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    description: Optional[str] = None
    suite_type: str
    created_by_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TestSuiteDetail(TestSuiteRead):
    test_cases: list[TestCaseRead] = []


# ─── Plans ──────────────────────────────────────────────

class TestPlanCreate(BaseModel):
    __test__ = False

    project_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    scope: Optional[str] = Field(None, max_length=5000)
    schedule: Optional[str] = Field(None, max_length=2000)
    test_types: Optional[str] = Field(None, max_length=2000)
    entry_criteria: Optional[str] = Field(None, max_length=5000)
    exit_criteria: Optional[str] = Field(None, max_length=5000)


class TestPlanUpdate(BaseModel):
    __test__ = False

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    scope: Optional[str] = Field(None, max_length=5000)
    schedule: Optional[str] = Field(None, max_length=2000)
    test_types: Optional[str] = Field(None, max_length=2000)
    entry_criteria: Optional[str] = Field(None, max_length=5000)
    exit_criteria: Optional[str] = Field(None, max_length=5000)


class TestPlanRead(BaseModel):
    __test__ = False

    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    description: Optional[str] = None
    scope: Optional[str] = None
    schedule: Optional[str] = None
    test_types: Optional[str] = None
    entry_criteria: Optional[str] = None
    exit_criteria: Optional[str] = None
    created_by_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TestPlanDetail(TestPlanRead):
    test_cases: list[TestCaseRead] = []
