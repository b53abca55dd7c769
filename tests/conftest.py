"""Test fixtures — a throwaway SQLite database per test, real auth end to end.

Learn: Testing pattern for async SQLAlchemy + FastAPI + aiosqlite:

1. Each test gets its own database file under tmp_path, created from the
   ORM models (no migrations needed), so tests never see each other's rows.
2. get_db is overridden to open sessions on that database, and
   get_activity_recorder to write audit rows into it as well.
3. Auth is NOT mocked: fixtures register real users and send their session
   tokens, so every request goes through the session resolver, the
   membership gate and the RBAC evaluator exactly like production.

TESTCRAFT_ENVIRONMENT=test is set before the app is imported, which turns
the rate limiter into a no-op for everything except tests that build
their own limiter.
"""

import os

os.environ.setdefault("TESTCRAFT_ENVIRONMENT", "test")
os.environ.setdefault("TESTCRAFT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid  # noqa: E402
from dataclasses import dataclass  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from testcraft.activity.recorder import ActivityRecorder, get_activity_recorder  # noqa: E402
from testcraft.db.engine import build_engine, get_db  # noqa: E402
from testcraft.db.models import Base  # noqa: E402
from testcraft.main import app as default_app, create_app  # noqa: E402
from testcraft.middleware.rate_limit import MemoryCounterStore, RateLimiter  # noqa: E402

PASSWORD = "correct-horse-battery"


@dataclass
class Account:
    """A registered user plus the session token to act as them."""

    id: str
    email: str
    name: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def override_dependencies(app, session_factory) -> None:
    """Point an app's DB and audit dependencies at a test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    recorder = ActivityRecorder(session_factory)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_activity_recorder] = lambda: recorder


# ═══════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'testcraft.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """Direct session for arranging rows and asserting on stored state."""
    async with session_factory() as session:
        yield session


# ═══════════════════════════════════════════════════════════
# HTTP client
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client for the real app, bound to the per-test database."""
    override_dependencies(default_app, session_factory)

    transport = ASGITransport(app=default_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    default_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def limited_client(session_factory):
    """Client for a fresh app whose rate limiter is switched on."""
    app = create_app(rate_limiter=RateLimiter(MemoryCounterStore(), enabled=True))
    override_dependencies(app, session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def register_user(client):
    """Factory: register a fresh user and return it as an Account."""

    async def _register(name: str = "Tester", email: str | None = None) -> Account:
        email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
        r = await client.post(
            "/api/v1/auth/register",
            json={"name": name, "email": email, "password": PASSWORD},
        )
        assert r.status_code == 201, r.text
        # Tests authenticate explicitly with Account.headers, not the session cookie.
        client.cookies.clear()
        body = r.json()
        return Account(
            id=body["user"]["id"],
            email=body["user"]["email"],
            name=body["user"]["name"],
            token=body["token"],
        )

    return _register


# ═══════════════════════════════════════════════════════════
# Organization scaffolding
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def manager(register_user):
    """The first registered user: platform admin and, below, org manager."""
    return await register_user(name="Morgan Manager")


@pytest_asyncio.fixture()
async def org(client, manager):
    r = await client.post(
        "/api/v1/organizations", json={"name": "Acme QA"}, headers=manager.headers
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest_asyncio.fixture()
async def add_member(client, manager, org, register_user):
    """Factory: register a user and add them to `org` with the given role."""

    async def _add(role: str, name: str = "Member") -> Account:
        account = await register_user(name=name)
        r = await client.post(
            f"/api/v1/organizations/{org['id']}/members",
            json={"email": account.email, "role": role},
            headers=manager.headers,
        )
        assert r.status_code == 201, r.text
        return account

    return _add


@pytest_asyncio.fixture()
async def project(client, manager, org):
    r = await client.post(
        f"/api/v1/organizations/{org['id']}/projects",
        json={"name": "Checkout", "description": "Payments flow"},
        headers=manager.headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest_asyncio.fixture()
async def create_case(client, manager, project):
    """Factory: create a test case in `project` (as the manager by default)."""

    async def _create(name: str = "Pay with card", account: Account | None = None, **fields):
        body = {"project_id": project["id"], "name": name, **fields}
        r = await client.post(
            "/api/v1/test-cases", json=body, headers=(account or manager).headers
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _create


@pytest_asyncio.fixture()
async def case(create_case):
    return await create_case(
        steps=[
            {"step_number": 1, "action": "Open checkout", "expected_result": "Form shown"},
            {"step_number": 2, "action": "Submit card", "data": "4242", "expected_result": "Paid"},
        ],
        preconditions=["Cart has one item"],
    )
