"""
Database Session Management

This module handles the database connection lifecycle and session management
for both the API process and the Celery workers.

Architecture Flow:
------------------
Application Start → Create Engine → Connection Pool Ready
↓
API Request / Background Task → Get Session → Execute Queries → Commit/Rollback → Close Session
↓
Application Shutdown → Dispose Engine → Close All Connections

Learning Resources:
- SQLAlchemy Engine: https://docs.sqlalchemy.org/en/20/core/engines.html
- Async Sessions: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


# ================================
# Database Engine Configuration
# ================================

def _is_postgres(url: str) -> bool:
    return url.startswith("postgresql")


def get_engine_config() -> dict[str, Any]:
    """
    Configure the database engine based on environment.

    Pool Types:
    -----------
    1. AsyncAdaptedQueuePool (development/production):
       - Keeps DB_POOL_SIZE connections open, DB_MAX_OVERFLOW extra on bursts
       - pool_pre_ping detects connections dropped by the server
    2. NullPool (testing/staging):
       - New connection per checkout, closed on release
       - Celery workers call asyncio.run() per task, so pooled asyncpg
         connections would outlive their event loop there as well

    Only PostgreSQL gets asyncpg server_settings; other dialects (SQLite in
    tests) reject unknown connect args.
    """
    config: dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "pool_pre_ping": True,
    }

    if _is_postgres(settings.DATABASE_URL):
        config["connect_args"] = {
            "server_settings": {
                "application_name": settings.APP_NAME,
            }
        }

    if settings.is_development or settings.is_production:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
        config.update({
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": 30,
            "pool_recycle": 7200 if settings.is_production else 3600,
        })
    else:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_type="NullPool",
        )
        config["poolclass"] = NullPool

    return config


def create_engine() -> AsyncEngine:
    """
    Create the async database engine.

    The URL selects the driver: postgresql+asyncpg:// in deployments,
    sqlite+aiosqlite:// for local experiments and the test suite.
    """
    engine_config = get_engine_config()

    engine = create_async_engine(
        settings.DATABASE_URL,
        **engine_config
    )

    logger.info(
        "database_engine_created",
        driver=engine.dialect.driver,
        pool_size=engine_config.get("pool_size", "NullPool"),
    )

    return engine


# ================================
# Global Engine Instance
# ================================
# One engine per process; it owns the connection pool.
engine: AsyncEngine = create_engine()


# ================================
# Session Factory
# ================================
# expire_on_commit=False keeps loaded attributes readable after commit,
# which the gateway relies on when it returns the new content id.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


# ================================
# Session Lifecycle Functions
# ================================

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session for a single request.

    Rolls back and re-raises on error so FastAPI's exception handlers
    see the original exception.

    Yields:
        AsyncSession: A database session for this request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(
                "database_session_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verify connectivity and, in development, create missing tables.

    Production schemas are managed by Alembic migrations.

    Called from: app.main.lifespan() startup event
    """
    logger.info("initializing_database")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("database_connection_successful")

        if settings.is_development:
            # Import models so every table is registered on Base.metadata
            import app.models  # noqa: F401
            from app.db.base import Base

            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("database_tables_created")

    except Exception as e:
        logger.error(
            "database_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


async def close_db() -> None:
    """
    Close the database connection pool.

    Called from: app.main.lifespan() shutdown event
    """
    logger.info("closing_database_connections")

    try:
        await engine.dispose()
        logger.info("database_connections_closed")

    except Exception as e:
        logger.error(
            "database_closure_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        # Don't raise - we're shutting down anyway


# ================================
# Database Health Check
# ================================

async def check_db_health() -> bool:
    """
    Check if the database is healthy and responsive.

    Returns:
        bool: True if database is healthy, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
