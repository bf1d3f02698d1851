"""
Alembic Migration Environment
=============================

What:  Runs the notes schema migrations.
How:   DATABASE_URL comes from notetaker.config (alembic.ini carries none).
       Online mode migrates over an async engine via run_sync(); offline
       mode renders SQL for `alembic upgrade head --sql`.
Who:   The `alembic` CLI, run from backend/.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from notetaker.config import settings
from notetaker.database import Base
from notetaker.models.note import Note  # noqa: F401  registers the notes table

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _common_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # SQLite has no real ALTER TABLE; batch mode copies the table instead
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    url = settings.database_url
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_common_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, **_common_options(settings.database_url))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(settings.database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
