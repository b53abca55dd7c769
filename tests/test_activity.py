"""Activity log tests — best-effort recording and the caller-scoped feed."""

import uuid

import pytest
from sqlalchemy import select

from testcraft.activity.recorder import ActivityRecorder, get_activity_recorder
from testcraft.db.models import ActivityAction, ActivityLog
from testcraft.main import app


class _BrokenSession:
    async def __aenter__(self):
        raise RuntimeError("database unavailable")

    async def __aexit__(self, *exc):
        return False


def _broken_factory():
    return _BrokenSession()


@pytest.mark.asyncio
async def test_recorder_writes_row(session_factory, db_session, manager):
    recorder = ActivityRecorder(session_factory)
    await recorder.record(
        uuid.UUID(manager.id), ActivityAction.UPDATED, "Project", 123, {"name": "x"}
    )
    rows = (
        await db_session.execute(select(ActivityLog).where(ActivityLog.object_type == "Project"))
    ).scalars().all()
    assert len(rows) == 1
    assert rows[0].object_id == "123"
    assert rows[0].changes == {"name": "x"}


@pytest.mark.asyncio
async def test_recorder_swallows_failures():
    recorder = ActivityRecorder(_broken_factory)
    await recorder.record(uuid.uuid4(), ActivityAction.CREATED, "TestCase", uuid.uuid4())


@pytest.mark.asyncio
async def test_mutation_succeeds_when_audit_write_fails(client, manager, db_session):
    app.dependency_overrides[get_activity_recorder] = lambda: ActivityRecorder(_broken_factory)
    r = await client.post(
        "/api/v1/organizations", json={"name": "No Audit"}, headers=manager.headers
    )
    assert r.status_code == 201

    r = await client.get(f"/api/v1/organizations/{r.json()['id']}", headers=manager.headers)
    assert r.status_code == 200
    logged = (
        await db_session.execute(
            select(ActivityLog).where(ActivityLog.object_type == "Organization")
        )
    ).scalars().all()
    assert logged == []


@pytest.mark.asyncio
async def test_feed_shows_only_own_entries(client, manager, case, register_user):
    other = await register_user()
    await client.post("/api/v1/organizations", json={"name": "Theirs"}, headers=other.headers)

    r = await client.get("/api/v1/activity", headers=manager.headers)
    assert r.status_code == 200
    page = r.json()
    assert page["total"] >= 4  # registration, org, project, test case
    assert {e["user_id"] for e in page["data"]} == {manager.id}
    assert page["data"][0]["object_type"] == "TestCase"
    assert page["data"][0]["action_type"] == "CREATED"

    r = await client.get("/api/v1/activity", headers=other.headers)
    assert {e["user_id"] for e in r.json()["data"]} == {other.id}


@pytest.mark.asyncio
async def test_feed_filters_by_object(client, manager, case):
    r = await client.get(
        "/api/v1/activity",
        params={"object_type": "TestCase", "object_id": case["id"]},
        headers=manager.headers,
    )
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert r.json()["data"][0]["changes"] == {"name": case["name"]}


@pytest.mark.asyncio
async def test_feed_paging(client, manager, org):
    r = await client.get(
        "/api/v1/activity", params={"page": 2, "limit": 1}, headers=manager.headers
    )
    page = r.json()
    assert page["page"] == 2
    assert page["limit"] == 1
    assert page["total_pages"] == page["total"]
    assert len(page["data"]) == 1
