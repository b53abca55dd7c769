"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (rate-limit sweeper, Redis,
database engine). Middleware, error handlers, CORS, and routers are all
registered here; each concern lives in its own module.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from testcraft import __version__
from testcraft.api import api_router
from testcraft.config import settings
from testcraft.db.engine import engine
from testcraft.errors import TestCraftError
from testcraft.middleware.rate_limit import (
    MemoryCounterStore,
    RateLimiter,
    RateLimitMiddleware,
    RateLimitRule,
    RedisCounterStore,
)
from testcraft.middleware.request_id import RequestIdMiddleware
from testcraft.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


def build_rate_limiter() -> RateLimiter:
    """Limiter from settings: in-process counters unless Redis is configured."""
    if settings.rate_limit_backend == "redis":
        store = RedisCounterStore(
            aioredis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        )
    else:
        store = MemoryCounterStore()
    return RateLimiter(store, enabled=settings.rate_limit_active)


def auth_rate_limit_rules() -> list[RateLimitRule]:
    prefix = api_router.prefix
    return [
        RateLimitRule(
            method="POST",
            path=f"{prefix}/auth/login",
            namespace="login",
            max_requests=settings.rate_limit_login_max,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        RateLimitRule(
            method="POST",
            path=f"{prefix}/auth/register",
            namespace="register",
            max_requests=settings.rate_limit_register_max,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    ]


async def _sweep_loop(limiter: RateLimiter, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await limiter.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: FastAPI lifespan replaces on_event("startup") / on_event("shutdown").
    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    limiter: RateLimiter = app.state.rate_limiter
    logger.info(
        "testcraft.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        rate_limit=limiter.enabled,
    )

    sweeper = asyncio.create_task(_sweep_loop(limiter, settings.rate_limit_sweep_seconds))

    yield

    # Shutdown
    logger.info("testcraft.shutdown")

    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass

    if isinstance(limiter.store, RedisCounterStore):
        await limiter.store.close()

    await engine.dispose()


async def _testcraft_error_handler(request: Request, exc: TestCraftError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers or None,
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render schema violations as 400 with the first error's message."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{field}: {message}" if field else message
    return JSONResponse(status_code=400, content={"detail": detail})


def create_app(rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="TestCraft",
        description="Test case management: organizations, projects, test cases, runs and RBAC",
        version=__version__,
        lifespan=lifespan,
    )

    limiter = rate_limiter or build_rate_limiter()
    app.state.rate_limiter = limiter

    app.add_exception_handler(TestCraftError, _testcraft_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, limiter=limiter, rules=auth_rate_limit_rules())
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: testcraft.main:app)
app = create_app()
