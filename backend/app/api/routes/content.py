"""
Content ingestion and reconciliation API endpoints.

- POST /ingest: create a content item (fast path) and queue processing
- GET /content/{id}/processed: current record plus derived artifacts (polled)
- POST /content/{id}/classify: one-shot PDF re-classification
- POST /process: generate a missing summary
- GET /content/{id}/chat-messages: persisted chat history for merging

Errors are raised as LearnChatError subclasses and rendered by the handler in
app.main as {"error": {"code", "message"}}.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status

from app.core.config import settings
from app.core.exceptions import InvalidInput
from app.db.deps import DBSession
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
from app.services.ai_service import AIService, get_ai_service
from app.services.classification_service import ClassificationService
from app.services.content_store import ContentStore
from app.services.ingestion import IngestionGateway, IngestPayload, get_ingestion_gateway
from app.services.summary_service import SummaryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Content"])


# ========================================
# Dependencies
# ========================================

IngestionGatewayDep = Annotated[IngestionGateway, Depends(get_ingestion_gateway)]
AIServiceDep = Annotated[AIService, Depends(get_ai_service)]


# ========================================
# Ingestion
# ========================================

@router.post("/ingest", response_model=IngestResponse)
async def ingest_content(
    db: DBSession,
    gateway: IngestionGatewayDep,
    content_type: Optional[str] = Form(None, alias="type"),
    workspace_id: Optional[str] = Form(None, alias="workspaceId"),
    file: Optional[UploadFile] = File(None),
    storage_path: Optional[str] = Form(None, alias="storagePath"),
    url: Optional[str] = Form(None),
    text: Optional[str] = Form(None),
) -> IngestResponse:
    """
    Ingest a PDF, YouTube video or pasted text.

    Returns as soon as the content row exists; extraction, chunking and
    summarization continue in the background.

    Raises:
        400: Unknown type or missing type-specific field
        404: Unknown workspace
        500: Content row could not be created
    """
    if not content_type:
        raise InvalidInput("type is required")

    file_bytes = None
    filename = None
    if file is not None:
        file_bytes = await file.read()
        filename = file.filename
        if len(file_bytes) > settings.MAX_UPLOAD_BYTES:
            raise InvalidInput(f"File exceeds the {settings.MAX_UPLOAD_BYTES} byte upload limit")

    payload = IngestPayload(
        file_bytes=file_bytes or None,
        filename=filename,
        storage_path=storage_path or None,
        url=url,
        text=text,
    )
    content = await gateway.ingest(db, content_type, workspace_id, payload)

    return IngestResponse(content_id=content.id)


# ========================================
# Reconciliation
# ========================================

@router.get("/content/{content_id}/processed", response_model=ProcessedContentResponse)
async def get_processed_content(content_id: str, db: DBSession) -> ProcessedContentResponse:
    """
    Current content record and its processed artifacts.

    ``processed`` is null until chunks or a summary exist.
    """
    store = ContentStore(db)
    content = await store.require_content(content_id)
    processed = await store.get_processed(content_id)

    return ProcessedContentResponse(
        content=ContentView.from_model(content),
        processed=ProcessedView.from_model(processed) if processed else None,
    )


@router.post("/content/{content_id}/classify", response_model=ClassifyResponse)
async def classify_content(content_id: str, db: DBSession, ai_service: AIServiceDep) -> ClassifyResponse:
    """
    Re-classify a PDF from its first page (once per content).

    Raises:
        400: Not a PDF, or no text on the first page
        404: Content or stored file missing
        409: Classification already in progress
        502: Classifier call failed
    """
    outcome = await ClassificationService(db, ai_service=ai_service).classify(content_id)
    return ClassifyResponse(classification=outcome.classification, cached=outcome.cached)


@router.post("/process", response_model=ProcessResponse)
async def process_summary(
    request: ProcessRequest,
    response: Response,
    db: DBSession,
    ai_service: AIServiceDep,
) -> ProcessResponse:
    """
    Generate the summary for a content item that has none yet.

    Returns 202 with ``status: "in_progress"`` while another request is
    generating it.

    Raises:
        400: No text available to summarize
        404: Unknown content id
        502: Summarizer call failed
    """
    outcome = await SummaryService(db, ai_service=ai_service).generate(request.content_id)

    if outcome.in_progress:
        response.status_code = status.HTTP_202_ACCEPTED
        return ProcessResponse(summary=None, status="in_progress")

    return ProcessResponse(summary=outcome.summary)


@router.get("/content/{content_id}/chat-messages", response_model=ChatMessagesResponse)
async def get_chat_messages(content_id: str, db: DBSession) -> ChatMessagesResponse:
    """Persisted chat messages for a content item, oldest first."""
    store = ContentStore(db)
    await store.require_content(content_id)
    messages = await store.get_chat_messages(content_id)
    return ChatMessagesResponse(messages=[ChatMessageView.from_model(m) for m in messages])
