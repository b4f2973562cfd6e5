"""
Pydantic schemas for content ingestion and reconciliation endpoints.

Wire keys follow what clients already send and read: camelCase for ids
(contentId, workspaceId), snake_case for everything else.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.chat import ChatMessage
from app.models.content import Content, ContentStatus, ContentType, ProcessedContent


# ========================================
# Request Schemas
# ========================================

class ProcessRequest(BaseModel):
    """Request schema for POST /process."""

    model_config = ConfigDict(populate_by_name=True)

    content_id: str = Field(
        ...,
        alias="contentId",
        description="Content to summarize",
        min_length=1,
        max_length=36,
    )

    @field_validator('content_id')
    @classmethod
    def validate_content_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("contentId cannot be empty")
        return v


# ========================================
# Response Schemas
# ========================================

class IngestResponse(BaseModel):
    """Returned as soon as the Content row exists."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    content_id: str = Field(..., alias="contentId")
    message: str = "Content ingested successfully"


class ContentView(BaseModel):
    id: str
    type: ContentType
    status: ContentStatus
    title: str
    raw_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    file_size: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, content: Content) -> "ContentView":
        return cls(
            id=content.id,
            type=content.type,
            status=content.status,
            title=content.title,
            raw_url=content.raw_url,
            metadata=content.metadata_bag,
            file_size=content.file_size,
            created_at=content.created_at,
            updated_at=content.updated_at,
        )


class ProcessedView(BaseModel):
    summary: Optional[str] = None
    chunks: List[Dict[str, Any]] = Field(default_factory=list)
    transcript: Optional[str] = None

    @classmethod
    def from_model(cls, processed: ProcessedContent) -> "ProcessedView":
        return cls(
            summary=processed.summary,
            chunks=processed.chunks or [],
            transcript=processed.transcript,
        )


class ProcessedContentResponse(BaseModel):
    """Response for GET /content/{id}/processed; polled by clients."""

    content: ContentView
    processed: Optional[ProcessedView] = None


class ClassifyResponse(BaseModel):
    success: bool = True
    classification: Dict[str, Any]
    cached: bool = False


class ProcessResponse(BaseModel):
    """
    Response for POST /process.

    status is "complete" when a summary is returned and "in_progress" when
    another request is generating it.
    """

    success: bool = True
    summary: Optional[str] = None
    status: str = "complete"


class ChatMessageView(BaseModel):
    role: str
    content: str
    timestamp: datetime
    references: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_model(cls, message: ChatMessage) -> "ChatMessageView":
        return cls(
            role=str(message.role),
            content=message.message,
            timestamp=message.created_at,
            references=message.references or [],
        )


class ChatMessagesResponse(BaseModel):
    messages: List[ChatMessageView]
