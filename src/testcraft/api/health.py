"""Health check endpoint.

Open (no auth) so load balancers and the CLI can probe it. The response
is 200 even when the database is unreachable; `status` says "degraded".
"""

import structlog
from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from testcraft import __version__
from testcraft.config import settings
from testcraft.db.engine import engine

router = APIRouter()
logger = structlog.get_logger()


async def _ping_database() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("health.database_unreachable", error=str(e))
        return f"error: {e.__class__.__name__}"
    return "ok"


@router.get("/health")
async def health_check(request: Request):
    database = await _ping_database()
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "server": "ok",
        "version": __version__,
        "environment": settings.environment,
        "database": database,
        "rate_limit": "on" if request.app.state.rate_limiter.enabled else "off",
    }
