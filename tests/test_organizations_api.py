"""Organization, member and RBAC-matrix API tests."""

import pytest
from sqlalchemy import select

from testcraft.db.models import ActivityAction, ActivityLog, OrgRole
from testcraft.services.access import default_permission_matrix


# ═══════════════════════════════════════════════════════════
# Organizations
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_org_makes_creator_manager(client, manager, org):
    r = await client.get("/api/v1/organizations", headers=manager.headers)
    assert r.status_code == 200
    orgs = r.json()
    assert len(orgs) == 1
    assert orgs[0]["id"] == org["id"]
    assert orgs[0]["role"] == "ORGANIZATION_MANAGER"
    assert orgs[0]["member_count"] == 1
    assert orgs[0]["project_count"] == 0
    assert org["max_projects"] == 10


@pytest.mark.asyncio
async def test_create_org_seeds_permission_matrix(client, manager, org):
    r = await client.get(f"/api/v1/organizations/{org['id']}/rbac", headers=manager.headers)
    assert r.status_code == 200
    assert len(r.json()) == len(default_permission_matrix())


@pytest.mark.asyncio
async def test_create_org_requires_name(client, manager):
    r = await client.post("/api/v1/organizations", json={"name": ""}, headers=manager.headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_get_org_includes_members_and_projects(client, manager, org, project):
    r = await client.get(f"/api/v1/organizations/{org['id']}", headers=manager.headers)
    assert r.status_code == 200
    detail = r.json()
    assert [m["user"]["email"] for m in detail["members"]] == [manager.email]
    assert [p["id"] for p in detail["projects"]] == [project["id"]]


@pytest.mark.asyncio
async def test_non_member_cannot_see_org(client, org, register_user):
    outsider = await register_user()
    r = await client.get(f"/api/v1/organizations/{org['id']}", headers=outsider.headers)
    assert r.status_code == 403

    r = await client.get("/api/v1/organizations", headers=outsider.headers)
    assert r.json() == []


@pytest.mark.asyncio
async def test_update_org_manager_only(client, manager, org, add_member):
    pm = await add_member("PROJECT_MANAGER")
    r = await client.put(
        f"/api/v1/organizations/{org['id']}", json={"max_projects": 3}, headers=pm.headers
    )
    assert r.status_code == 403

    r = await client.put(
        f"/api/v1/organizations/{org['id']}",
        json={"name": "Acme Quality", "max_projects": 3},
        headers=manager.headers,
    )
    assert r.status_code == 200
    assert r.json()["name"] == "Acme Quality"
    assert r.json()["max_projects"] == 3


# ═══════════════════════════════════════════════════════════
# Members
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_invite_existing_user(client, manager, org, register_user):
    dev = await register_user(name="Dana Dev")
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/members",
        json={"email": dev.email.upper(), "role": "DEVELOPER"},
        headers=manager.headers,
    )
    assert r.status_code == 201
    member = r.json()
    assert member["user_id"] == dev.id
    assert member["role"] == "DEVELOPER"
    assert member["user"]["name"] == "Dana Dev"

    r = await client.get(f"/api/v1/organizations/{org['id']}/members", headers=dev.headers)
    assert r.status_code == 200
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_invite_unknown_email_creates_pending_user(client, manager, org):
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/members",
        json={"email": "new.person@example.com", "role": "QA_ENGINEER"},
        headers=manager.headers,
    )
    assert r.status_code == 201
    assert r.json()["user"]["name"] == "new.person"

    r = await client.post(
        "/api/v1/auth/login", json={"email": "new.person@example.com", "password": "anything"}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_invite_existing_member_conflicts(client, manager, org, add_member):
    qa = await add_member("QA_ENGINEER")
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/members",
        json={"email": qa.email, "role": "DEVELOPER"},
        headers=manager.headers,
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_only_managers_invite(client, org, add_member):
    pm = await add_member("PROJECT_MANAGER")
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/members",
        json={"email": "someone@example.com", "role": "DEVELOPER"},
        headers=pm.headers,
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "Only organization managers can perform this action"


@pytest.mark.asyncio
async def test_update_member_role_logs_exactly_once(client, manager, org, add_member, db_session):
    dev = await add_member("DEVELOPER")
    members = (
        await client.get(f"/api/v1/organizations/{org['id']}/members", headers=manager.headers)
    ).json()
    member_id = next(m["id"] for m in members if m["user_id"] == dev.id)

    r = await client.put(
        f"/api/v1/organizations/{org['id']}/members/{member_id}",
        json={"role": "QA_ENGINEER"},
        headers=manager.headers,
    )
    assert r.status_code == 200
    assert r.json()["role"] == "QA_ENGINEER"

    logs = (
        await db_session.execute(
            select(ActivityLog).where(
                ActivityLog.object_type == "OrganizationMember",
                ActivityLog.object_id == member_id,
                ActivityLog.action_type == ActivityAction.UPDATED,
            )
        )
    ).scalars().all()
    assert len(logs) == 1
    assert str(logs[0].user_id) == manager.id
    assert logs[0].changes == {"role": OrgRole.QA_ENGINEER.value}


@pytest.mark.asyncio
async def test_member_not_in_org_is_404(client, manager, org, register_user):
    other_manager = await register_user()
    other = (
        await client.post(
            "/api/v1/organizations", json={"name": "Other"}, headers=other_manager.headers
        )
    ).json()
    foreign_member = (
        await client.get(
            f"/api/v1/organizations/{other['id']}/members", headers=other_manager.headers
        )
    ).json()[0]

    r = await client.put(
        f"/api/v1/organizations/{org['id']}/members/{foreign_member['id']}",
        json={"role": "DEVELOPER"},
        headers=manager.headers,
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cannot_remove_last_manager(client, manager, org):
    members = (
        await client.get(f"/api/v1/organizations/{org['id']}/members", headers=manager.headers)
    ).json()
    r = await client.delete(
        f"/api/v1/organizations/{org['id']}/members/{members[0]['id']}",
        headers=manager.headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot remove the last organization manager"


@pytest.mark.asyncio
async def test_manager_can_leave_when_another_manager_exists(client, manager, org, add_member):
    co_manager = await add_member("ORGANIZATION_MANAGER")
    members = (
        await client.get(f"/api/v1/organizations/{org['id']}/members", headers=manager.headers)
    ).json()
    own = next(m for m in members if m["user_id"] == manager.id)

    r = await client.delete(
        f"/api/v1/organizations/{org['id']}/members/{own['id']}", headers=manager.headers
    )
    assert r.status_code == 200
    assert r.json() == {"deleted": True}

    r = await client.get(f"/api/v1/organizations/{org['id']}", headers=manager.headers)
    assert r.status_code == 403
    r = await client.get(f"/api/v1/organizations/{org['id']}", headers=co_manager.headers)
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_remove_other_member(client, manager, org, add_member):
    dev = await add_member("DEVELOPER")
    members = (
        await client.get(f"/api/v1/organizations/{org['id']}/members", headers=manager.headers)
    ).json()
    dev_member = next(m for m in members if m["user_id"] == dev.id)

    r = await client.delete(
        f"/api/v1/organizations/{org['id']}/members/{dev_member['id']}", headers=manager.headers
    )
    assert r.status_code == 200
    r = await client.get(f"/api/v1/organizations/{org['id']}", headers=dev.headers)
    assert r.status_code == 403


# ═══════════════════════════════════════════════════════════
# RBAC matrix
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_rbac_matrix_manager_only(client, org, add_member):
    qa = await add_member("QA_ENGINEER")
    r = await client.get(f"/api/v1/organizations/{org['id']}/rbac", headers=qa.headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_upsert_permissions(client, manager, org):
    r = await client.put(
        f"/api/v1/organizations/{org['id']}/rbac",
        json=[
            {"role": "DEVELOPER", "object_type": "TEST_CASE", "action": "EDIT", "allowed": True},
            {"role": "QA_ENGINEER", "object_type": "REPORT", "action": "DELETE", "allowed": True},
        ],
        headers=manager.headers,
    )
    assert r.status_code == 200
    cells = {(p["role"], p["object_type"], p["action"]): p["allowed"] for p in r.json()}
    assert cells[("DEVELOPER", "TEST_CASE", "EDIT")] is True
    assert cells[("QA_ENGINEER", "REPORT", "DELETE")] is True
    assert len(cells) == len(default_permission_matrix())


@pytest.mark.asyncio
async def test_toggle_single_permission(client, manager, org):
    matrix = (
        await client.get(f"/api/v1/organizations/{org['id']}/rbac", headers=manager.headers)
    ).json()
    cell = next(
        p for p in matrix
        if (p["role"], p["object_type"], p["action"]) == ("QA_ENGINEER", "TEST_CASE", "EDIT")
    )
    assert cell["allowed"] is True

    r = await client.put(
        f"/api/v1/organizations/{org['id']}/rbac/{cell['id']}",
        json={"allowed": False},
        headers=manager.headers,
    )
    assert r.status_code == 200
    assert r.json()["allowed"] is False
