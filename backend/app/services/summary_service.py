"""
On-demand summary generation (POST /process).

Clients call this when a content item is READY or PARTIAL but has no summary
yet. The ContentTrigger row for (content_id, "summary") deduplicates
concurrent requests: only the claimant calls the model, everyone else is told
the summary is in progress and keeps polling.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    InvalidInput,
    LearnChatError,
    PersistenceFailure,
    RefinementFailure,
)
from app.models.content import Content, ContentType, ProcessedContent, TriggerKind
from app.services.ai_service import AIService, get_ai_service
from app.services.content_store import ContentStore
from app.services.processors.chunker import get_chunker
from app.services.processors.sanitizer import sanitize_text
from app.services.transcript_service import (
    TranscriptError,
    TranscriptService,
    get_transcript_service,
)

logger = logging.getLogger(__name__)


@dataclass
class SummaryOutcome:
    """
    Result of a summary request.

    - summary set, created False: a summary already existed
    - summary set, created True: generated by this request
    - summary None, in_progress True: another request holds the claim
    """

    summary: Optional[str]
    created: bool = False
    in_progress: bool = False


class SummaryService:
    """
    Usage:
    ------
    service = SummaryService(db)
    outcome = await service.generate(content_id)
    """

    def __init__(
        self,
        db: AsyncSession,
        ai_service: Optional[AIService] = None,
        transcript_service: Optional[TranscriptService] = None,
    ):
        self.db = db
        self.store = ContentStore(db)
        self.ai_service = ai_service or get_ai_service()
        self._transcript_service = transcript_service

    @property
    def transcript_service(self) -> TranscriptService:
        if self._transcript_service is None:
            self._transcript_service = get_transcript_service()
        return self._transcript_service

    async def generate(self, content_id: str) -> SummaryOutcome:
        """
        Return the existing summary or generate one.

        Raises:
            ContentNotFound: Unknown content id
            InvalidInput: No text could be recovered to summarize
            RefinementFailure: The model call failed (claim released);
                AIServiceError is its usual subclass
            PersistenceFailure: The summary could not be stored (claim released)
        """
        content = await self.store.require_content(content_id)
        processed = await self.store.get_processed(content_id)

        if processed is not None and processed.has_summary:
            logger.info(f"Summary already exists for {content_id}")
            return SummaryOutcome(summary=processed.summary)

        text = await self._recover_text(content, processed)
        if not text:
            raise InvalidInput(f"No text available to summarize for content {content_id}")

        claimed = await self.store.claim_trigger(
            content_id,
            TriggerKind.SUMMARY,
            stale_after_seconds=settings.AI_REQUEST_TIMEOUT_SECONDS * 2,
        )
        if not claimed:
            logger.info(f"Summary for {content_id} is already being generated")
            return SummaryOutcome(summary=None, in_progress=True)

        try:
            summary = await self.ai_service.summarize(text)
        except Exception as e:
            await self._release_claim(content_id)
            if isinstance(e, LearnChatError):
                raise
            logger.error(f"Summary generation for {content_id} failed: {e}")
            raise RefinementFailure(f"Summary generation failed for content {content_id}") from e

        try:
            await self.store.save_summary(content_id, summary)
        except Exception as e:
            await self._release_claim(content_id)
            if isinstance(e, LearnChatError):
                raise
            logger.error(f"Saving summary for {content_id} failed: {e}")
            raise PersistenceFailure(f"Failed to save summary for content {content_id}") from e

        # The stored summary now answers repeat requests
        await self.store.release_trigger(content_id, TriggerKind.SUMMARY)
        logger.info(f"Generated summary for {content_id} ({len(summary)} chars)")
        return SummaryOutcome(summary=summary, created=True)

    async def _release_claim(self, content_id: str) -> None:
        await self.db.rollback()
        await self.store.release_trigger(content_id, TriggerKind.SUMMARY)

    async def _recover_text(
        self,
        content: Content,
        processed: Optional[ProcessedContent],
    ) -> Optional[str]:
        """extracted_text, else joined chunks, else (youtube) a fresh transcript."""
        if content.extracted_text and content.extracted_text.strip():
            return content.extracted_text

        if processed is not None and processed.chunks:
            ordered = sorted(processed.chunks, key=lambda chunk: chunk.get("index", 0))
            separator = " " if ContentType(content.type) == ContentType.YOUTUBE else ""
            joined = separator.join(chunk.get("text", "") for chunk in ordered).strip()
            if joined:
                return joined

        if ContentType(content.type) == ContentType.YOUTUBE:
            return await self._refetch_transcript(content)

        return None

    async def _refetch_transcript(self, content: Content) -> Optional[str]:
        video_id = content.metadata_bag.get("videoId")
        if not video_id:
            return None

        try:
            transcript = await asyncio.wait_for(
                self.transcript_service.get_transcript(video_id),
                timeout=settings.TRANSCRIPT_TIMEOUT_SECONDS,
            )
        except (TranscriptError, asyncio.TimeoutError) as e:
            logger.warning(f"Transcript re-fetch failed for {content.id}: {e}")
            return None

        text = sanitize_text(transcript.text)
        if not text:
            return None

        chunks = get_chunker().chunk_transcript(transcript.segments)
        await self.store.upsert_processed(content.id, chunks=chunks, transcript=text)
        await self.store.update_content(content.id, extracted_text=text)
        return text
