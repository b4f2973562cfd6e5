"""
Pydantic schemas for request/response validation.

Import all schemas here for easy access.
"""

from app.schemas.content import (
    ChatMessagesResponse,
    ChatMessageView,
    ClassifyResponse,
    ContentView,
    IngestResponse,
    ProcessedContentResponse,
    ProcessedView,
    ProcessRequest,
    ProcessResponse,
)

__all__ = [
    "ChatMessagesResponse",
    "ChatMessageView",
    "ClassifyResponse",
    "ContentView",
    "IngestResponse",
    "ProcessedContentResponse",
    "ProcessedView",
    "ProcessRequest",
    "ProcessResponse",
]
