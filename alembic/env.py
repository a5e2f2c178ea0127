# alembic/env.py
"""Migraciones contra el mismo engine async que usa la app.

La URL sale siempre de app.core.config (DATABASE_URL o DB_*), nunca de
alembic.ini, así migraciones y servicio apuntan a la misma base.
"""
from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

import app.models  # noqa: F401  registra meetings, consultas, turnos y tokens en Base.metadata
from app.core.config import settings
from app.core.db import Base

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

target_metadata = Base.metadata
DATABASE_URL = settings.async_database_url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        **kwargs,
    )


def _migrate(connection: Connection) -> None:
    # sqlite no soporta ALTER completo: batch mode
    _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
    with context.begin_transaction():
        context.run_migrations()


async def migrate_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


def migrate_offline() -> None:
    # modo --sql: sólo renderiza, sin driver async
    _configure(
        url=DATABASE_URL.replace("+aiomysql", "+pymysql").replace("+aiosqlite", ""),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    migrate_offline()
else:
    asyncio.run(migrate_online())
