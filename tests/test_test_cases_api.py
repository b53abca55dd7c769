"""Test case API tests — create, read, update, debug flag, delete, limits."""

import pytest


@pytest.mark.asyncio
async def test_create_case_defaults(client, case, manager):
    assert case["test_type"] == "STEP_BASED"
    assert case["last_run_status"] == "NOT_RUN"
    assert case["last_run_at"] is None
    assert case["debug_flag"] is False
    assert case["created_by_id"] == manager.id
    assert case["preconditions"] == ["Cart has one item"]
    assert [s["step_number"] for s in case["steps"]] == [1, 2]
    assert case["steps"][0]["data"] == ""


@pytest.mark.asyncio
async def test_any_member_can_create_and_read(client, project, create_case, add_member):
    dev = await add_member("DEVELOPER")
    created = await create_case("Dev-written case", account=dev)
    r = await client.get(f"/api/v1/test-cases/{created['id']}", headers=dev.headers)
    assert r.status_code == 200
    assert r.json()["recent_runs"] == []


@pytest.mark.asyncio
async def test_create_case_validation(client, manager, project):
    r = await client.post(
        "/api/v1/test-cases",
        json={
            "project_id": project["id"],
            "name": "Bad step",
            "steps": [{"step_number": 0, "action": "x", "expected_result": "y"}],
        },
        headers=manager.headers,
    )
    assert r.status_code == 400
    assert "step_number" in r.json()["detail"]


@pytest.mark.asyncio
async def test_create_case_in_unknown_project(client, manager):
    r = await client.post(
        "/api/v1/test-cases",
        json={"project_id": "00000000-0000-0000-0000-000000000000", "name": "Orphan"},
        headers=manager.headers,
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_test_case_limit(client, manager, org, project, create_case):
    await client.put(
        f"/api/v1/organizations/{org['id']}",
        json={"max_test_cases_per_project": 2},
        headers=manager.headers,
    )
    await create_case("One")
    await create_case("Two")
    r = await client.post(
        "/api/v1/test-cases",
        json={"project_id": project["id"], "name": "Three"},
        headers=manager.headers,
    )
    assert r.status_code == 400
    assert "maximum of 2 test cases" in r.json()["detail"]


@pytest.mark.asyncio
async def test_update_case(client, manager, case):
    r = await client.put(
        f"/api/v1/test-cases/{case['id']}",
        json={"description": "Happy path", "preconditions": []},
        headers=manager.headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["description"] == "Happy path"
    assert body["preconditions"] == []
    assert body["name"] == case["name"]


@pytest.mark.asyncio
async def test_debug_flag_toggle(client, manager, case):
    r = await client.put(f"/api/v1/test-cases/{case['id']}/debug-flag", headers=manager.headers)
    assert r.status_code == 200
    assert r.json()["debug_flag"] is True
    assert r.json()["debug_flagged_by_id"] == manager.id
    assert r.json()["debug_flagged_at"] is not None

    r = await client.put(f"/api/v1/test-cases/{case['id']}/debug-flag", headers=manager.headers)
    assert r.json()["debug_flag"] is False
    assert r.json()["debug_flagged_by_id"] is None
    assert r.json()["debug_flagged_at"] is None


@pytest.mark.asyncio
async def test_recent_runs_capped_at_ten(client, manager, case):
    for i in range(12):
        await client.post(
            "/api/v1/test-runs",
            json={"test_case_id": case["id"], "environment": "qa", "status": "PASS",
                  "executed_at": f"2026-01-{i + 1:02d}T08:00:00+00:00"},
            headers=manager.headers,
        )
    r = await client.get(f"/api/v1/test-cases/{case['id']}", headers=manager.headers)
    runs = r.json()["recent_runs"]
    assert len(runs) == 10
    assert runs[0]["executed_at"].startswith("2026-01-12")


@pytest.mark.asyncio
async def test_delete_case_removes_runs_and_comments(client, manager, case):
    run = (
        await client.post(
            "/api/v1/test-runs",
            json={"test_case_id": case["id"], "environment": "qa", "status": "FAIL"},
            headers=manager.headers,
        )
    ).json()
    await client.post(
        "/api/v1/comments",
        json={"content": "Why?", "commentable_type": "TEST_RUN", "commentable_id": str(run["id"])},
        headers=manager.headers,
    )

    r = await client.delete(f"/api/v1/test-cases/{case['id']}", headers=manager.headers)
    assert r.status_code == 200
    assert r.json() == {"deleted": True}

    r = await client.get(f"/api/v1/test-runs/{run['id']}/comments", headers=manager.headers)
    assert r.status_code == 404
    r = await client.delete(f"/api/v1/test-cases/{case['id']}", headers=manager.headers)
    assert r.status_code == 404
