"""
Ingestion Gateway

Synchronous entry point for new learning material. For each submission it:

1. Validates the type-specific fields
2. Runs a latency-bounded fast pass so a usable title exists immediately
   (first PDF page only, YouTube metadata lookup, or the pasted text's heading)
3. Inserts the Content row: READY with a specific title, else PROCESSING
4. Schedules background processing without awaiting it

This is the only code path that creates Content rows; everything after it
updates the row in place.
"""

import asyncio
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ContentNotFound,
    ExtractionFailure,
    InvalidInput,
    PersistenceFailure,
)
from app.core.logging import get_logger
from app.models.content import Content, ContentStatus, ContentType
from app.models.workspace import Workspace
from app.services.metadata_extractor import (
    PDF_PLACEHOLDER,
    TEXT_PLACEHOLDER,
    analyze_text,
    clean_title,
    extract_title,
    is_generic_title,
)
from app.services.pdf_service import PDFService, get_pdf_service
from app.services.processors.sanitizer import sanitize_text
from app.services.storage import BlobStorageError, BlobStore, build_pdf_path, get_blob_store
from app.services.youtube import YouTubeService, get_youtube_service

logger = get_logger(__name__)

GATEWAY_TYPES = (ContentType.PDF, ContentType.YOUTUBE, ContentType.TEXT)

_TIMESTAMP_PREFIX_RE = re.compile(r"^\d+-")


@dataclass
class IngestPayload:
    """
    Type-specific submission fields.

    - pdf: file_bytes (+ filename) or an already staged storage_path
    - youtube: url
    - text: text
    """

    file_bytes: Optional[bytes] = None
    filename: Optional[str] = None
    storage_path: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None


@dataclass
class _FastPathResult:
    title: str
    metadata: Dict[str, Any]
    raw_url: Optional[str] = None
    extracted_text: Optional[str] = None
    file_size: Optional[int] = None


def parse_content_type(value: Any) -> ContentType:
    """
    Raises:
        InvalidInput: For unknown types and types without an ingestion path
    """
    try:
        content_type = ContentType(str(value).strip().lower())
    except ValueError:
        raise InvalidInput(f"Unknown content type: {value!r}")
    if content_type not in GATEWAY_TYPES:
        raise InvalidInput(f"Content type '{content_type}' cannot be ingested here")
    return content_type


def _default_scheduler(content_id: str) -> Any:
    # Imported lazily so the gateway does not pull in the Celery app at import time
    from app.tasks.processing_tasks import enqueue_content_processing
    return enqueue_content_processing(content_id)


class IngestionGateway:
    """
    Validates submissions, runs the fast path and creates Content rows.

    Usage:
    ------
    gateway = IngestionGateway()
    content = await gateway.ingest(
        db,
        "pdf",
        workspace_id,
        IngestPayload(file_bytes=data, filename="chapter1.pdf"),
    )
    # content.id is returned to the client immediately
    """

    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        pdf_service: Optional[PDFService] = None,
        youtube_service: Optional[YouTubeService] = None,
        scheduler: Optional[Callable[[str], Any]] = None,
    ):
        self.blob_store = blob_store or get_blob_store()
        self.pdf_service = pdf_service or get_pdf_service()
        self._youtube_service = youtube_service
        self.scheduler = scheduler or _default_scheduler

    @property
    def youtube_service(self) -> YouTubeService:
        if self._youtube_service is None:
            self._youtube_service = get_youtube_service()
        return self._youtube_service

    async def ingest(
        self,
        db: AsyncSession,
        content_type: Any,
        workspace_id: str,
        payload: IngestPayload,
    ) -> Content:
        """
        Create a Content row for a submission and schedule processing.

        Raises:
            InvalidInput: Unknown type or missing type-specific field
            ContentNotFound: Unknown workspace
            PersistenceFailure: The row could not be committed
        """
        content_type = parse_content_type(content_type)
        if not workspace_id:
            raise InvalidInput("workspaceId is required")

        workspace = await db.get(Workspace, workspace_id)
        if workspace is None:
            raise ContentNotFound(f"Workspace {workspace_id} not found")

        if content_type == ContentType.PDF:
            result = await self._fast_path_pdf(workspace_id, payload)
        elif content_type == ContentType.YOUTUBE:
            result = await self._fast_path_youtube(payload)
        else:
            result = self._fast_path_text(payload)

        status = ContentStatus.PROCESSING if is_generic_title(result.title) else ContentStatus.READY
        content = Content(
            workspace_id=workspace_id,
            type=content_type,
            status=status,
            title=result.title,
            raw_url=result.raw_url,
            extracted_text=result.extracted_text,
            content_metadata=result.metadata,
            file_size=result.file_size,
        )
        db.add(content)

        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("content_create_failed", workspace_id=workspace_id, type=str(content_type), error=str(e))
            raise PersistenceFailure("Failed to create content") from e

        logger.info(
            "content_ingested",
            content_id=content.id,
            type=str(content_type),
            status=str(status),
            title=content.title,
        )
        self._schedule(content.id)
        return content

    def _schedule(self, content_id: str) -> None:
        # Fire-and-forget; the stale-content sweeper re-enqueues lost work
        try:
            self.scheduler(content_id)
        except Exception as e:
            logger.error("content_enqueue_failed", content_id=content_id, error=str(e))

    # ========================================
    # Fast Paths
    # ========================================

    async def _fast_path_pdf(self, workspace_id: str, payload: IngestPayload) -> _FastPathResult:
        data = payload.file_bytes
        storage_path = payload.storage_path

        if not data and not storage_path:
            raise InvalidInput("A PDF upload requires a file or a storagePath")

        if data and not storage_path:
            storage_path = build_pdf_path(workspace_id, payload.filename)
            try:
                await self.blob_store.upload(storage_path, data)
            except (BlobStorageError, OSError) as e:
                logger.error("pdf_upload_failed", storage_path=storage_path, error=str(e))
                storage_path = None
        elif not data:
            try:
                data = await self.blob_store.download(storage_path)
            except (BlobStorageError, OSError) as e:
                logger.warning("pdf_download_failed", storage_path=storage_path, error=str(e))

        first_page = ""
        info_title = None
        if data:
            try:
                document = await asyncio.wait_for(
                    self.pdf_service.extract_first_page(data, settings.QUICK_EXTRACT_CHARS),
                    timeout=settings.FAST_PATH_TIMEOUT_SECONDS,
                )
                first_page = sanitize_text(document.page_texts[0]) if document.page_texts else ""
                info_title = document.info_title
            except asyncio.TimeoutError:
                logger.warning("pdf_fast_path_timeout", storage_path=storage_path)
            except ExtractionFailure as e:
                logger.warning("pdf_fast_path_failed", storage_path=storage_path, error=str(e))

        filename = payload.filename
        if not filename and storage_path:
            filename = _TIMESTAMP_PREFIX_RE.sub("", os.path.basename(storage_path))

        extracted = analyze_text(first_page, info_title=info_title, filename=filename)
        title = extracted.title or PDF_PLACEHOLDER

        metadata = {
            "storagePath": storage_path,
            "source": "pdf",
            "display_title": title,
            "chapter": extracted.chapter,
            "chapter_number": extracted.chapter_number,
            "grade": extracted.grade,
        }
        if info_title:
            metadata["info"] = {"Title": info_title}

        return _FastPathResult(
            title=title,
            metadata=metadata,
            file_size=len(data) if data else None,
        )

    async def _fast_path_youtube(self, payload: IngestPayload) -> _FastPathResult:
        if not payload.url or not payload.url.strip():
            raise InvalidInput("A YouTube submission requires a url")

        video_id = YouTubeService.extract_video_id_from_url(payload.url)
        if not video_id:
            raise InvalidInput(f"Not a valid YouTube URL: {payload.url}")

        video = await self.youtube_service.resolve_video_metadata(video_id)
        return _FastPathResult(
            title=video.title,
            metadata=video.to_metadata(),
            raw_url=payload.url.strip(),
        )

    def _fast_path_text(self, payload: IngestPayload) -> _FastPathResult:
        text = sanitize_text(payload.text or "")
        if not text:
            raise InvalidInput("A text submission requires non-empty text")

        title = clean_title(extract_title(text)) or TEXT_PLACEHOLDER
        return _FastPathResult(
            title=title,
            metadata={"source": "text", "display_title": title},
            extracted_text=text,
            file_size=len(text.encode("utf-8")),
        )


def get_ingestion_gateway() -> IngestionGateway:
    """Get ingestion gateway instance."""
    return IngestionGateway()
