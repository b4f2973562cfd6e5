"""
Alembic Migration Environment

What happens here:
------------------
1. Load application settings (database URL)
2. Import all models so Alembic can detect them
3. Configure connection to database
4. Run migrations (upgrade/downgrade)

Key Functions:
--------------
- run_migrations_offline(): Generate SQL without connecting to DB
- run_migrations_online(): Connect to DB (asyncpg) and apply migrations
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Make `app` importable when alembic runs from backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.config import settings
from app.db.base import Base

# Import all models so they're registered with Base.metadata
from app.models import (  # noqa: F401
    ChatMessage,
    ChatSession,
    Content,
    ContentTrigger,
    ProcessedContent,
    Workspace,
)

# ================================
# Alembic Config Object
# ================================

config = context.config

# The URL always comes from application settings, not the .ini file
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ================================
# Metadata Target
# ================================

# Autogenerate compares the live database against Base.metadata
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Emits SQL to stdout instead of executing it; useful for reviewing a
    migration before applying it by hand.
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
        compare_type=True,  # Detect VARCHAR(50) → VARCHAR(100)
        compare_server_default=True,
        render_as_batch=True,  # SQLite needs batch mode for ALTER
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create an async engine and run migrations through run_sync."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,  # Migrations are one-shot
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against the configured database."""
    asyncio.run(run_async_migrations())


# ================================
# Main Execution
# ================================

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
