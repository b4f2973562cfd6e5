"""
Content Models

This module contains the ingestion models for the LearnChat backend.

Models Included:
----------------
1. Content - One ingested learning artifact (PDF, YouTube video, pasted text)
2. ProcessedContent - Derived artifacts for a Content (chunks, summary, transcript)
3. ContentTrigger - Server-side idempotency keys for one-shot operations
4. ContentType (Enum) - Kind of source material
5. ContentStatus (Enum) - Position in the processing state machine

Database Tables:
----------------
- contents: One row per ingested item
- processed_contents: One-to-one with contents, upserted by content_id
- content_triggers: (content_id, kind) pairs such as "classification already attempted"

Relationships:
--------------
- Workspace (1) ←→ (Many) Content
- Content (1) ←→ (0..1) ProcessedContent
- Content (1) ←→ (Many) ContentTrigger

Async note: relationships are declared for cascades and Alembic; async code
queries related rows explicitly instead of touching lazy attributes.

Learning Resources:
-------------------
- One-to-one: https://docs.sqlalchemy.org/en/20/orm/basic_relationships.html#one-to-one
- JSONB in PostgreSQL: https://www.postgresql.org/docs/current/datatype-json.html
"""

import enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Enum, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import BaseModel, JSONBag, String500, String1000

if TYPE_CHECKING:
    from app.models.chat import ChatSession
    from app.models.workspace import Workspace


# ================================
# Enums
# ================================

class ContentType(str, enum.Enum):
    """
    Kind of source material.

    Immutable after creation. The gateway accepts pdf, youtube and text;
    audio and video rows can exist (imported elsewhere) but have no
    processing pipeline here.
    """

    PDF = "pdf"
    YOUTUBE = "youtube"
    TEXT = "text"
    AUDIO = "audio"
    VIDEO = "video"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


class ContentStatus(str, enum.Enum):
    """
    Position of a Content in the processing state machine.

    Status Flow:
    ------------
    PROCESSING → READY → COMPLETE      (summary stored)
         ↓         ↓
       PARTIAL ────┘                   (usable but incomplete, e.g. no transcript)

    ERROR is terminal and reachable from any state on an unrecoverable
    failure. COMPLETE always has a summary in ProcessedContent. The allowed
    edges live in app.services.content_store.ALLOWED_TRANSITIONS.

    Values are sent to clients verbatim: "processing" | "ready" | "partial"
    | "complete" | "error".
    """

    PROCESSING = "processing"
    READY = "ready"
    PARTIAL = "partial"
    COMPLETE = "complete"
    ERROR = "error"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


class TriggerKind(str, enum.Enum):
    """One-shot operations deduplicated per content id."""

    SUMMARY = "summary"
    CLASSIFICATION = "classification"

    def __str__(self) -> str:
        return self.value


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    # Store lowercase values (what clients see), not member names
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
        validate_strings=True,
    )


# ================================
# Content Model
# ================================

class Content(BaseModel):
    """
    One ingested learning artifact.

    Created only by the ingestion gateway; afterwards mutated in place by the
    background processor, the summary endpoint and re-classification.

    Metadata Bag (JSON):
    --------------------
    Additive only; always written through content_store.merge_metadata.

    - pdf: storagePath, source, display_title, chapter, chapter_number,
      grade, pages, info {"Title": ...}, classified_at, document_type, ...
    - youtube: videoId, source, title, thumbnail, channelTitle
    - text: source, display_title

    Example:
    --------
    content = Content(
        workspace_id=workspace.id,
        type=ContentType.PDF,
        status=ContentStatus.READY,
        title="A Square and a Cube",
        content_metadata={"source": "pdf", "chapter_number": 1},
    )
    """

    __tablename__ = "contents"

    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning workspace"
    )

    type: Mapped[ContentType] = mapped_column(
        _enum_column(ContentType),
        nullable=False,
        comment="Source kind (immutable)"
    )

    status: Mapped[ContentStatus] = mapped_column(
        _enum_column(ContentStatus),
        nullable=False,
        default=ContentStatus.PROCESSING,
        index=True,
        comment="Processing state machine position"
    )
    # Index: the stale-content sweeper scans for PROCESSING rows

    title: Mapped[str] = mapped_column(
        String500,
        nullable=False,
        comment="Best current human-readable title (monotonically improving)"
    )

    raw_url: Mapped[Optional[str]] = mapped_column(
        String1000,
        nullable=True,
        comment="External source URL (YouTube) or NULL"
    )

    extracted_text: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Full sanitized plain text once extraction has run"
    )

    content_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONBag,
        nullable=False,
        default=dict,
        comment="Extraction provenance bag (merge-only)"
    )
    # Named 'content_metadata' because 'metadata' is reserved by SQLAlchemy;
    # exposed to clients as "metadata"

    file_size: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Uploaded file size in bytes"
    )

    # ================================
    # Relationships
    # ================================

    workspace: Mapped["Workspace"] = relationship(
        "Workspace",
        back_populates="contents",
    )

    processed: Mapped[Optional["ProcessedContent"]] = relationship(
        "ProcessedContent",
        back_populates="content",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    triggers: Mapped[list["ContentTrigger"]] = relationship(
        "ContentTrigger",
        back_populates="content",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    chat_sessions: Mapped[list["ChatSession"]] = relationship(
        "ChatSession",
        back_populates="content",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Content(id={self.id}, type={self.type}, "
            f"title='{(self.title or '')[:30]}', status={self.status})"
        )

    @property
    def metadata_bag(self) -> dict[str, Any]:
        """Metadata as a plain dict (never None)."""
        return dict(self.content_metadata or {})


# ================================
# ProcessedContent Model
# ================================

class ProcessedContent(BaseModel):
    """
    Derived artifacts for a Content.

    Chunk Shape (JSON list, ordered by index):
    -------------------------------------------
    {"index": 0, "text": "...", "page": 1}                             # pdf
    {"index": 0, "text": "...", "timestamp": "1:05", "start": 65.0}    # youtube
    {"index": 0, "text": "..."}                                        # text

    For pdf and text sources, joining chunk texts in index order reproduces
    Content.extracted_text exactly.

    The unique content_id makes reprocessing an upsert: chunks are replaced
    wholesale, never appended.
    """

    __tablename__ = "processed_contents"

    content_id: Mapped[str] = mapped_column(
        ForeignKey("contents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="One-to-one link to contents"
    )

    chunks: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONBag,
        nullable=False,
        default=list,
        comment="Ordered chunk list"
    )

    summary: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="AI summary (markdown); NULL until summarization succeeds"
    )

    transcript: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Denormalized transcript for video sources"
    )

    content: Mapped["Content"] = relationship(
        "Content",
        back_populates="processed",
    )

    @property
    def has_summary(self) -> bool:
        return bool(self.summary and self.summary.strip())


# ================================
# ContentTrigger Model
# ================================

class ContentTrigger(BaseModel):
    """
    Idempotency key for a one-shot operation on a content item.

    A row for (content_id, "classification") means a re-classification has
    been claimed; repeat requests return the stored result instead of
    calling the model again. Failed attempts delete their row so the
    operation can be retried.
    """

    __tablename__ = "content_triggers"

    content_id: Mapped[str] = mapped_column(
        ForeignKey("contents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Content this key belongs to"
    )

    kind: Mapped[TriggerKind] = mapped_column(
        _enum_column(TriggerKind),
        nullable=False,
        comment="Operation kind"
    )

    result: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONBag,
        nullable=True,
        comment="Stored outcome returned to repeat callers"
    )

    content: Mapped["Content"] = relationship(
        "Content",
        back_populates="triggers",
    )

    __table_args__ = (
        UniqueConstraint(
            "content_id",
            "kind",
            name="uq_content_triggers_content_id_kind"
        ),
    )
