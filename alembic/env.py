"""Alembic environment: migrates the database named by DATABASE_URL.

Set ``CLINIC_ID`` to migrate one clinic database through
``CLINIC_DATABASE_URL_TEMPLATE`` instead.
"""

import asyncio
import os
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
from app.config import settings
from app.database import to_async_url
from app.models import ALL_METADATA

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = list(ALL_METADATA)


def get_url() -> str:
    """Resolve the database URL to migrate."""
    clinic_id = os.getenv("CLINIC_ID")
    if clinic_id and settings.clinic_database_url_template:
        return to_async_url(settings.clinic_database_url_template.format(clinic_id=clinic_id))
    return to_async_url(settings.database_url)


def run_migrations_offline() -> None:
    """Emit SQL without a live connection."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations against a live async engine."""
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
    asyncio.run(run_migrations_online())
