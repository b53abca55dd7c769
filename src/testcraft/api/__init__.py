"""HTTP API, mounted under /api/v1 by main.py.

Learn: Authentication is attached per router via `include_router(...,
dependencies=...)` instead of on each handler. Only health, register and
login are reachable anonymously. Handlers that need the caller still
declare Depends(get_current_user); FastAPI caches it, so the session is
resolved once per request. Authorization (org roles and the RBAC matrix)
happens in the services, not here.
"""

from fastapi import APIRouter, Depends

from testcraft.api import (
    auth,
    comments,
    health,
    organizations,
    projects,
    test_cases,
    test_runs,
    test_suites,
)
from testcraft.auth.dependencies import get_current_user

PUBLIC = [
    (health.router, ["health"]),
    (auth.router, ["auth"]),
]

AUTHENTICATED = [
    (organizations.router, ["organizations", "members", "rbac"]),
    (projects.router, ["projects"]),
    (test_cases.router, ["test-cases"]),
    (test_runs.router, ["test-runs"]),
    (test_suites.suites_router, ["test-suites"]),
    (test_suites.plans_router, ["test-plans"]),
    (comments.router, ["comments", "activity"]),
]

api_router = APIRouter(prefix="/api/v1")

for router, tags in PUBLIC:
    api_router.include_router(router, tags=tags)

for router, tags in AUTHENTICATED:
    api_router.include_router(router, tags=tags, dependencies=[Depends(get_current_user)])
