"""
Database Dependencies for FastAPI Routes

Routes declare the session they need and FastAPI provides it:

    @router.get("/content/{content_id}/processed")
    async def get_processed(content_id: str, db: DBSession):
        content = await ContentStore(db).get_content(content_id)

The yield-based dependency guarantees the session is closed (and rolled back
on error) however the route exits. Tests swap it out through
``app.dependency_overrides[get_db]``.

Learning Resources:
- FastAPI Dependencies: https://fastapi.tiangolo.com/tutorial/dependencies/
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session


# ================================
# Database Session Dependency
# ================================

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session.

    Each request gets its own session/transaction; routes commit
    explicitly (usually through app.services.content_store.ContentStore).

    Yields:
        AsyncSession: Database session for the current request
    """
    async for session in get_session():
        yield session


# ================================
# Type Annotation Shortcut
# ================================
# async def my_route(db: DBSession) is equivalent to
# async def my_route(db: AsyncSession = Depends(get_db))
DBSession = Annotated[AsyncSession, Depends(get_db)]


__all__ = [
    "get_db",
    "DBSession",
]
