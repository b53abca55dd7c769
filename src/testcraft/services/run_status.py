"""Run-status reducer.

Learn: TestCase.last_run_status / last_run_at mirror the newest TestRun of
that case. "Newest" means greatest executed_at; on a timestamp tie the run
inserted last (greatest id) wins, so the result never depends on the
database's row order.

Callers invoke recompute_last_run() after every run create / start /
update / complete / delete, *before* committing, so the cache and the run
history land in the same transaction. Running it twice is a no-op.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.db.models import TestCase, TestRun, TestRunStatus


async def recompute_last_run(db: AsyncSession, test_case_id: uuid.UUID) -> None:
    await db.flush()

    result = await db.execute(
        select(TestRun.status, TestRun.executed_at)
        .where(TestRun.test_case_id == test_case_id)
        .order_by(TestRun.executed_at.desc(), TestRun.id.desc())
        .limit(1)
    )
    latest = result.first()

    case = await db.get(TestCase, test_case_id)
    if case is None:
        return

    if latest is None:
        case.last_run_status = TestRunStatus.NOT_RUN
        case.last_run_at = None
    else:
        case.last_run_status = latest.status
        case.last_run_at = latest.executed_at
    await db.flush()
