"""Database engine and per-request sessions.

Learn: One process-wide AsyncEngine owns the connection pool; every
request borrows an AsyncSession from `async_session_factory` through the
`get_db` dependency. Production runs on PostgreSQL via asyncpg. SQLite
via aiosqlite is good enough for local use and the tests, but it ignores
foreign keys unless asked per connection, and the ON DELETE CASCADE
chains (organization -> project -> test case -> runs) depend on them.
"""

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from testcraft.config import settings

POOL_OPTIONS = {"pool_size": 5, "max_overflow": 15, "pool_pre_ping": True}


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, **POOL_OPTIONS)
    sqlite_engine = create_async_engine(url, echo=echo)
    event.listen(sqlite_engine.sync_engine, "connect", _sqlite_pragmas)
    return sqlite_engine


engine = build_engine(settings.database_url, echo=settings.debug)

# expire_on_commit=False: services return ORM rows after committing.
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with async_session_factory() as session:
        yield session
