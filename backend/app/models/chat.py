"""
Chat History Models

The chat endpoint itself (retrieval + generation) lives outside this service;
these tables are only read here so clients can reconcile their local message
list with the persisted one.

Models Included:
----------------
1. ChatSession - One conversation thread about a Content
2. ChatMessage - Individual messages within a session
3. MessageRole (Enum) - Role of message sender

Relationships:
--------------
- Content (1) ←→ (Many) ChatSession
- ChatSession (1) ←→ (Many) ChatMessage
"""

import enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Enum, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import BaseModel, JSONBag

if TYPE_CHECKING:
    from app.models.content import Content


class MessageRole(str, enum.Enum):
    """
    Role of the message sender.

    - USER: question typed by the student
    - ASSISTANT: model answer (may be updated in place while streaming)
    """

    USER = "user"
    ASSISTANT = "assistant"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


class ChatSession(BaseModel):
    """A conversation thread attached to one Content."""

    __tablename__ = "chat_sessions"

    content_id: Mapped[str] = mapped_column(
        ForeignKey("contents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Content being discussed"
    )

    content: Mapped["Content"] = relationship(
        "Content",
        back_populates="chat_sessions",
    )

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="ChatMessage.created_at"
    )


class ChatMessage(BaseModel):
    """
    One persisted chat message.

    ``references`` holds the source citations attached to assistant answers,
    e.g. [{"chunk_index": 3, "page": 2}].
    """

    __tablename__ = "chat_messages"

    session_id: Mapped[str] = mapped_column(
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning chat session"
    )

    role: Mapped[MessageRole] = mapped_column(
        Enum(
            MessageRole,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            length=20,
        ),
        nullable=False,
        comment="user or assistant"
    )

    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Message body"
    )

    references: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(
        JSONBag,
        nullable=True,
        comment="Citations attached to the message"
    )

    session: Mapped["ChatSession"] = relationship(
        "ChatSession",
        back_populates="messages",
    )
