"""
Alembic Migration Environment

Configures how Alembic talks to the harvester database.

What happens here:
------------------
1. Load application settings (database URL)
2. Import every model so Base.metadata knows all tables
3. Run migrations offline (emit SQL) or online (async engine)

Key Functions:
--------------
- run_migrations_offline(): Render SQL for review without a connection
- run_async_migrations(): Open an async engine and apply revisions
- do_run_migrations(): Configure the context on a live connection and run;
  SQLite runs in batch mode

Learning Note:
--------------
The initial revision enables the pgvector extension before creating
chunk_embeddings. The HNSW index (vector_cosine_ops) is created with raw SQL.

Run from ``backend/``:

    alembic upgrade head
    alembic revision --autogenerate -m "describe change"
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from harvester.core.config import settings
from harvester.db.base import Base

# Registers stories, comments, extraction_jobs, chunk_embeddings, task_records
import harvester.models  # noqa: F401


config = context.config

# The URL always comes from settings / .env, never from alembic.ini
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode: print the SQL instead of applying it.

    Useful to review a migration or hand it to a DBA.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create an async engine (no pooling) and run migrations through run_sync."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against the configured database."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
