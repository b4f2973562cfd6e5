"""
Database Base Classes and Common Utilities

Foundation for every ORM model in the ingestion service.

Key Concepts:
--------------
1. DeclarativeBase: SQLAlchemy's base class that enables ORM functionality
2. CommonTableAttributes: id / created_at / updated_at shared by all tables
3. orm_registry: Central registry that tracks all models and their metadata

Identifiers are opaque UUID strings rather than sequential integers: content
ids are handed to clients the moment a submission is accepted and must not
leak ordering or volume.

Learning Resources:
- SQLAlchemy Declarative Base: https://docs.sqlalchemy.org/en/20/orm/declarative_config.html
- Type variants: https://docs.sqlalchemy.org/en/20/core/type_api.html#sqlalchemy.types.TypeEngine.with_variant
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, MetaData, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry


# ================================
# Naming Convention for Constraints
# ================================
# Stable constraint names keep Alembic autogenerate diffs predictable.
#
# Format examples:
# - ix_contents_workspace_id: Index on 'contents.workspace_id'
# - fk_contents_workspace_id_workspaces: Foreign key to 'workspaces'
# - uq_processed_contents_content_id: Unique constraint
convention = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class Workspace(Base):
            __tablename__ = "workspaces"
            id: Mapped[str] = mapped_column(String(36), primary_key=True)
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str


def generate_uuid() -> str:
    """Default factory for primary keys."""
    return str(uuid.uuid4())


# ================================
# Common Table Attributes Mixin
# ================================
class CommonTableAttributes:
    """
    Mixin that provides common fields and methods to all models.

    Common Fields Added:
    --------------------
    - id: Opaque UUID primary key, generated client-side so the id is known
      before the INSERT is flushed
    - created_at: When the record was created (set once, never changes)
    - updated_at: When the record was last modified (updates automatically)

    Timestamps are timezone-aware UTC; convert to local time in the client.
    """

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="Opaque UUID primary key"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    # onupdate fires on every ORM UPDATE of the row
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"

    def dict(self) -> dict[str, Any]:
        """
        Convert model instance to dictionary.

        Handy for logging and tests; API responses go through the Pydantic
        schemas in app.schemas instead.
        """
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, CommonTableAttributes):
    """
    Ready-to-use base class for all application models.

    Every model automatically gets:
    - Primary key (id)
    - Creation timestamp (created_at)
    - Update timestamp (updated_at)
    - Useful methods (dict(), __repr__())
    """

    __abstract__ = True


# ================================
# Column Type Aliases
# ================================
String50 = String(50)  # Example: enum-like labels, roles
String100 = String(100)  # Example: short names
String255 = String(255)  # Example: titles, URLs
String500 = String(500)  # Example: storage paths
String1000 = String(1000)  # Example: long source URLs

# Open attribute bags: JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONBag = JSON().with_variant(JSONB(), "postgresql")

# Usage example:
# content_metadata: Mapped[dict] = mapped_column("metadata", JSONBag, default=dict)
