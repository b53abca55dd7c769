"""Alembic environment.

Learn: `alembic upgrade head` (run from the repo root) lands here. The
database URL is always taken from settings
(TESTCRAFT_DATABASE_URL) so the app and its migrations can never point
at different databases. SQLite cannot ALTER most things in place, so
batch mode is switched on for it.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from testcraft.config import settings
from testcraft.db.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = settings.database_url
BATCH_MODE = DATABASE_URL.startswith("sqlite")


def _configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, render_as_batch=BATCH_MODE, **kwargs)


def _migrate_offline() -> None:
    # Emits SQL to stdout; no connection is opened.
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _migrate_sync(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _migrate_offline()
else:
    asyncio.run(_migrate_online())
