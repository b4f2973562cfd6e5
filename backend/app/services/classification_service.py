"""
One-shot PDF re-classification (POST /content/{id}/classify).

Used by clients whose title still looks like a section heading after several
polls. The first page is sent to the classifier; the cleaned display_title
and the classification fields are merged into metadata and the title is
updated monotonically.

Idempotent per content id: the classification is stored on the
ContentTrigger row and repeat calls return it without calling the model.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ContentBusy, ContentNotFound, InvalidInput
from app.models.content import ContentType, TriggerKind
from app.services.ai_service import AIService, get_ai_service
from app.services.content_store import ContentStore
from app.services.pdf_service import PDFService, get_pdf_service
from app.services.processors.sanitizer import sanitize_text
from app.services.storage import BlobStorageError, BlobStore, get_blob_store

logger = logging.getLogger(__name__)

CLASSIFICATION_METADATA_KEYS = (
    "display_title",
    "document_type",
    "subject",
    "grade",
    "book_name",
    "chapter",
    "chapter_number",
    "classified_at",
)


@dataclass
class ClassificationOutcome:
    classification: Dict[str, Any]
    cached: bool = False


class ClassificationService:
    """
    Usage:
    ------
    service = ClassificationService(db)
    outcome = await service.classify(content_id)
    print(outcome.classification["display_title"])
    """

    def __init__(
        self,
        db: AsyncSession,
        ai_service: Optional[AIService] = None,
        pdf_service: Optional[PDFService] = None,
        blob_store: Optional[BlobStore] = None,
    ):
        self.db = db
        self.store = ContentStore(db)
        self.ai_service = ai_service or get_ai_service()
        self.pdf_service = pdf_service or get_pdf_service()
        self.blob_store = blob_store or get_blob_store()

    async def classify(self, content_id: str) -> ClassificationOutcome:
        """
        Classify a PDF from its first page.

        Raises:
            ContentNotFound: Unknown content, or its file is missing
            InvalidInput: Not a PDF, or the first page has no text
            ContentBusy: Another request is classifying this content
            AIServiceError: The model call failed (claim released)
        """
        content = await self.store.require_content(content_id)
        if ContentType(content.type) != ContentType.PDF:
            raise InvalidInput("Classification is only available for PDF content")

        existing = await self.store.get_trigger(content_id, TriggerKind.CLASSIFICATION)
        if existing is not None and existing.result:
            return ClassificationOutcome(classification=existing.result, cached=True)

        storage_path = content.metadata_bag.get("storagePath")
        if not storage_path:
            raise ContentNotFound(f"No stored PDF for content {content_id}")

        claimed = await self.store.claim_trigger(
            content_id,
            TriggerKind.CLASSIFICATION,
            stale_after_seconds=settings.AI_REQUEST_TIMEOUT_SECONDS * 2,
        )
        if not claimed:
            trigger = await self.store.get_trigger(content_id, TriggerKind.CLASSIFICATION)
            if trigger is not None and trigger.result:
                return ClassificationOutcome(classification=trigger.result, cached=True)
            raise ContentBusy(f"Content {content_id} is already being classified")

        try:
            classification = await self._classify_first_page(content_id, storage_path)
        except Exception:
            await self.db.rollback()
            await self.store.release_trigger(content_id, TriggerKind.CLASSIFICATION)
            raise

        return ClassificationOutcome(classification=classification)

    async def _classify_first_page(self, content_id: str, storage_path: str) -> Dict[str, Any]:
        try:
            data = await self.blob_store.download(storage_path)
        except BlobStorageError:
            raise ContentNotFound(f"PDF file not found for content {content_id}")

        document = await asyncio.wait_for(
            self.pdf_service.extract_first_page(data, settings.CLASSIFY_FIRST_PAGE_CHARS),
            timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
        )
        first_page = sanitize_text(document.page_texts[0]) if document.page_texts else ""
        if not first_page:
            raise InvalidInput("Could not extract text from PDF")

        classification = await self.ai_service.classify(first_page, info_title=document.info_title)

        # None values would wipe heuristic chapter/grade
        updates = {
            key: classification[key]
            for key in CLASSIFICATION_METADATA_KEYS
            if classification.get(key) is not None
        }
        await self.store.update_content(
            content_id,
            metadata=updates,
            title=classification.get("display_title"),
        )
        await self.store.store_trigger_result(content_id, TriggerKind.CLASSIFICATION, classification)

        logger.info(f"Classified {content_id} as '{classification.get('display_title')}'")
        return classification
