"""
Alembic environment for the telemetry schema.

Runs migrations through an async engine built from ``DATABASE_URL`` (or an
explicit ``-x dburl=...`` override) and exposes the ORM metadata for
autogenerate. TimescaleDB's internal chunk tables live in their own schemas
and are ignored during comparison.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-103)

TODO:
- None
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from telemetry_engine.config import get_settings
from telemetry_engine.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

_IGNORED_SCHEMAS = frozenset({"_timescaledb_internal", "_timescaledb_catalog"})


def get_url() -> str:
    """Return the ``-x dburl`` override, falling back to DATABASE_URL."""
    override = context.get_x_argument(as_dictionary=True).get("dburl")
    if override:
        return override
    return get_settings().DATABASE_URL


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip TimescaleDB-managed objects during autogenerate."""
    schema = getattr(obj, "schema", None)
    return schema not in _IGNORED_SCHEMAS


def run_migrations_offline() -> None:
    """Emit migration SQL to the script output without a live connection."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = get_url()

    connectable = async_engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
