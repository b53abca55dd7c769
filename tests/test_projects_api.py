"""Project API tests — CRUD, limits, listings, stats."""

import pytest


# ═══════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_and_list_projects(client, manager, org, project):
    assert project["organization_id"] == org["id"]
    assert project["name"] == "Checkout"

    r = await client.post(
        "/api/v1/projects",
        json={"organization_id": org["id"], "name": "Search"},
        headers=manager.headers,
    )
    assert r.status_code == 201

    r = await client.get(f"/api/v1/organizations/{org['id']}/projects", headers=manager.headers)
    assert r.status_code == 200
    assert {p["name"] for p in r.json()} == {"Checkout", "Search"}


@pytest.mark.asyncio
async def test_only_managers_create_projects(client, org, add_member):
    qa = await add_member("QA_ENGINEER")
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/projects", json={"name": "Nope"}, headers=qa.headers
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "Insufficient permissions to create projects"

    pm = await add_member("PROJECT_MANAGER")
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/projects", json={"name": "Yes"}, headers=pm.headers
    )
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_project_limit(client, manager, org):
    await client.put(
        f"/api/v1/organizations/{org['id']}", json={"max_projects": 1}, headers=manager.headers
    )
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/projects", json={"name": "One"}, headers=manager.headers
    )
    assert r.status_code == 201
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/projects", json={"name": "Two"}, headers=manager.headers
    )
    assert r.status_code == 400
    assert "maximum of 1 projects" in r.json()["detail"]


@pytest.mark.asyncio
async def test_create_project_in_unknown_org(client, manager):
    r = await client.post(
        "/api/v1/organizations/00000000-0000-0000-0000-000000000000/projects",
        json={"name": "Ghost"},
        headers=manager.headers,
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_get_and_update_project(client, manager, project, add_member):
    dev = await add_member("DEVELOPER")
    r = await client.get(f"/api/v1/projects/{project['id']}", headers=dev.headers)
    assert r.status_code == 200

    r = await client.put(
        f"/api/v1/projects/{project['id']}", json={"name": "Hacked"}, headers=dev.headers
    )
    assert r.status_code == 403

    r = await client.put(
        f"/api/v1/projects/{project['id']}",
        json={"description": "Card and wallet payments"},
        headers=manager.headers,
    )
    assert r.status_code == 200
    assert r.json()["description"] == "Card and wallet payments"
    assert r.json()["name"] == "Checkout"


@pytest.mark.asyncio
async def test_project_hidden_from_outsiders(client, project, register_user):
    outsider = await register_user()
    r = await client.get(f"/api/v1/projects/{project['id']}", headers=outsider.headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "You do not have access to this project"


@pytest.mark.asyncio
async def test_delete_project_cascades(client, manager, project, case, add_member):
    pm = await add_member("PROJECT_MANAGER")
    r = await client.delete(f"/api/v1/projects/{project['id']}", headers=pm.headers)
    assert r.status_code == 403

    await client.post(
        "/api/v1/comments",
        json={"content": "Note", "commentable_type": "TEST_CASE", "commentable_id": case["id"]},
        headers=manager.headers,
    )
    r = await client.delete(f"/api/v1/projects/{project['id']}", headers=manager.headers)
    assert r.status_code == 200

    r = await client.get(f"/api/v1/projects/{project['id']}", headers=manager.headers)
    assert r.status_code == 404
    r = await client.get(f"/api/v1/test-cases/{case['id']}", headers=manager.headers)
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Listings
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_test_cases_filters_and_pages(client, manager, project, create_case):
    passing = await create_case("Login with password")
    await create_case("Login with SSO", test_type="GHERKIN", gherkin_syntax="Given a user")
    await create_case("Logout")
    await client.post(
        "/api/v1/test-runs",
        json={"test_case_id": passing["id"], "environment": "staging", "status": "PASS"},
        headers=manager.headers,
    )

    url = f"/api/v1/projects/{project['id']}/test-cases"
    r = await client.get(url, headers=manager.headers)
    assert r.json()["total"] == 3

    r = await client.get(url, params={"search": "login"}, headers=manager.headers)
    assert {c["name"] for c in r.json()["data"]} == {"Login with password", "Login with SSO"}

    r = await client.get(url, params={"status": "PASS"}, headers=manager.headers)
    assert [c["id"] for c in r.json()["data"]] == [passing["id"]]

    r = await client.get(url, params={"test_type": "GHERKIN"}, headers=manager.headers)
    assert [c["name"] for c in r.json()["data"]] == ["Login with SSO"]

    r = await client.get(url, params={"page": 2, "limit": 2}, headers=manager.headers)
    page = r.json()
    assert page["total_pages"] == 2
    assert len(page["data"]) == 1


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(client, manager, project, create_case):
    await create_case("100% coverage")
    await create_case("1000 users")
    r = await client.get(
        f"/api/v1/projects/{project['id']}/test-cases",
        params={"search": "100%"},
        headers=manager.headers,
    )
    assert [c["name"] for c in r.json()["data"]] == ["100% coverage"]


@pytest.mark.asyncio
async def test_list_test_runs_filters(client, manager, project, case):
    for env, status, when in (
        ("staging", "PASS", "2026-01-10T10:00:00+00:00"),
        ("production", "FAIL", "2026-02-10T10:00:00+00:00"),
        ("staging-eu", "FAIL", "2026-03-10T10:00:00+00:00"),
    ):
        await client.post(
            "/api/v1/test-runs",
            json={"test_case_id": case["id"], "environment": env, "status": status,
                  "executed_at": when},
            headers=manager.headers,
        )

    url = f"/api/v1/projects/{project['id']}/test-runs"
    r = await client.get(url, headers=manager.headers)
    assert [run["environment"] for run in r.json()["data"]] == [
        "staging-eu", "production", "staging",
    ]

    r = await client.get(url, params={"environment": "staging"}, headers=manager.headers)
    assert r.json()["total"] == 2

    r = await client.get(url, params={"status": "FAIL"}, headers=manager.headers)
    assert r.json()["total"] == 2

    r = await client.get(
        url,
        params={"date_from": "2026-02-01T00:00:00", "date_to": "2026-02-28T00:00:00"},
        headers=manager.headers,
    )
    assert [run["environment"] for run in r.json()["data"]] == ["production"]


# ═══════════════════════════════════════════════════════════
# Reporting
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_stats(client, manager, project, create_case):
    a = await create_case("A")
    b = await create_case("B")
    c = await create_case("C")
    await create_case("D (never run)")
    for target, status in ((a, "PASS"), (b, "PASS"), (c, "FAIL")):
        await client.post(
            "/api/v1/test-runs",
            json={"test_case_id": target["id"], "environment": "qa", "status": status},
            headers=manager.headers,
        )
    await client.put(f"/api/v1/test-cases/{c['id']}/debug-flag", headers=manager.headers)

    r = await client.get(f"/api/v1/projects/{project['id']}/stats", headers=manager.headers)
    assert r.status_code == 200
    assert r.json() == {
        "total_test_cases": 4,
        "pass_rate": 67,
        "recent_runs": 3,
        "debug_flagged": 1,
    }


@pytest.mark.asyncio
async def test_environments_merge_defaults_and_used(client, manager, project, case):
    await client.post(
        "/api/v1/test-runs",
        json={"test_case_id": case["id"], "environment": "perf-lab", "status": "SKIPPED"},
        headers=manager.headers,
    )
    r = await client.get(f"/api/v1/projects/{project['id']}/environments", headers=manager.headers)
    assert r.json() == ["development", "perf-lab", "production", "qa", "staging"]
