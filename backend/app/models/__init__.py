"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from app.models import Content, ProcessedContent, Workspace

This ensures that:
1. Alembic can detect all models for migrations
2. String-based relationship targets resolve
3. All models are available throughout the app
"""

from app.models.chat import ChatMessage, ChatSession, MessageRole
from app.models.content import (
    Content,
    ContentStatus,
    ContentTrigger,
    ContentType,
    ProcessedContent,
    TriggerKind,
)
from app.models.workspace import Workspace

__all__ = [
    # Workspace
    "Workspace",
    # Content models
    "Content",
    "ProcessedContent",
    "ContentTrigger",
    # Chat models
    "ChatSession",
    "ChatMessage",
    # Enums
    "ContentType",
    "ContentStatus",
    "TriggerKind",
    "MessageRole",
]
