"""
Workspace Model

A workspace is the owning collection for ingested content: many Contents per
Workspace, one Workspace per owning user. Authentication is handled outside
this service, so ``owner_id`` is an opaque identifier rather than a foreign
key.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import BaseModel, String100, String255

if TYPE_CHECKING:
    from app.models.content import Content


class Workspace(BaseModel):
    """Owning collection for Content rows."""

    __tablename__ = "workspaces"

    owner_id: Mapped[str] = mapped_column(
        String100,
        nullable=False,
        index=True,
        comment="Opaque id of the owning user"
    )

    name: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Workspace display name"
    )

    contents: Mapped[list["Content"]] = relationship(
        "Content",
        back_populates="workspace",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    # Delete workspace → delete its contents → processed content, triggers, chat
