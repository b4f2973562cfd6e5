"""Database utilities and session management."""

from app.db.base import Base, BaseModel, JSONBag, String50, String100, String255, String500, String1000
from app.db.deps import DBSession, get_db
from app.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    get_session,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    # Column types
    "JSONBag",
    "String50",
    "String100",
    "String255",
    "String500",
    "String1000",
    # Session management
    "engine",
    "AsyncSessionLocal",
    "get_session",
    "init_db",
    "close_db",
    "check_db_health",
    # Dependencies
    "get_db",
    "DBSession",
]
