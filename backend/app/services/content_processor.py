"""
Background Content Processor

Takes a Content row created by the ingestion gateway to its final state.

Pipelines by type:
------------------
pdf:
    download bytes → full-text extraction → sanitize → quick title/chapter
    → persist text, metadata, title, READY → chunks with page numbers
    → in parallel: AI title refinement (first page) + summary → COMPLETE

youtube:
    refresh video metadata → transcript (optional) → timed chunks + transcript
    → READY and summary → COMPLETE, or PARTIAL when there is no transcript

text:
    chunks → READY → summary → COMPLETE

audio / video:
    no pipeline here → PARTIAL

Failure semantics:
------------------
- Nothing escapes process() except ContentBusy / TransientProcessingError,
  which the Celery task retries. Any other error degrades the record to
  PARTIAL (COMPLETE stays COMPLETE) and is recorded in
  metadata.processing_error.
- AI failures are logged and ignored: the heuristic title stands and a
  missing summary leaves the record READY.
- Chunk and summary write failures are logged and non-fatal.
- Every external call has its own timeout.

Runs for one content id are serialised by the ContentLock lease.
"""

import asyncio
import os
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ExtractionFailure,
    InvalidStatusTransition,
    PersistenceFailure,
)
from app.core.logging import get_logger
from app.db.session import AsyncSessionLocal
from app.models.content import Content, ContentStatus, ContentType
from app.services.ai_service import AIService, get_ai_service
from app.services.content_lock import ContentLock
from app.services.content_store import ContentStore
from app.services.metadata_extractor import analyze_text
from app.services.pdf_service import PDFService, get_pdf_service
from app.services.processors.chunker import ContentChunker, get_chunker
from app.services.processors.sanitizer import join_pages, sanitize_text
from app.services.storage import BlobStorageError, BlobStore, get_blob_store
from app.services.transcript_service import (
    NoTranscriptAvailable,
    TranscriptError,
    TranscriptService,
    get_transcript_service,
)
from app.services.youtube import YouTubeService, get_youtube_service

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncSession]

_TIMESTAMP_PREFIX_RE = re.compile(r"^\d+-")

# States a non-forced run leaves alone
_SETTLED_STATES = (ContentStatus.COMPLETE, ContentStatus.PARTIAL, ContentStatus.ERROR)


class ContentProcessor:
    """
    Runs the per-type processing pipeline for one content id.

    Usage:
    ------
    processor = ContentProcessor()
    status = await processor.process(content_id)

    Collaborators are injectable; defaults come from the service factories.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        lock: Optional[Any] = None,
        blob_store: Optional[BlobStore] = None,
        pdf_service: Optional[PDFService] = None,
        youtube_service: Optional[YouTubeService] = None,
        transcript_service: Optional[TranscriptService] = None,
        ai_service: Optional[AIService] = None,
        chunker: Optional[ContentChunker] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.lock = lock or ContentLock()
        self.blob_store = blob_store or get_blob_store()
        self.pdf_service = pdf_service or get_pdf_service()
        self._youtube_service = youtube_service
        self._transcript_service = transcript_service
        self.ai_service = ai_service or get_ai_service()
        self.chunker = chunker or get_chunker()

    @property
    def youtube_service(self) -> YouTubeService:
        if self._youtube_service is None:
            self._youtube_service = get_youtube_service()
        return self._youtube_service

    @property
    def transcript_service(self) -> TranscriptService:
        if self._transcript_service is None:
            self._transcript_service = get_transcript_service()
        return self._transcript_service

    # ========================================
    # Entry Point
    # ========================================

    async def process(self, content_id: str, force: bool = False) -> Optional[ContentStatus]:
        """
        Process one content item.

        Args:
            content_id: Content to process
            force: Reprocess even if the record already settled
                (COMPLETE / PARTIAL); resets it to PROCESSING first

        Returns:
            Final status, or None if the content does not exist

        Raises:
            ContentBusy: Another run holds this content's lease
            TransientProcessingError: The lock backend is unavailable
        """
        async with self.lock.hold(content_id):
            async with self.session_factory() as db:
                store = ContentStore(db)
                content = await store.get_content(content_id)

                if content is None:
                    logger.warning("content_processing_skipped", content_id=content_id, reason="not_found")
                    return None

                if content.status == ContentStatus.ERROR:
                    logger.info("content_processing_skipped", content_id=content_id, reason="error_state")
                    return content.status

                if content.status in _SETTLED_STATES and not force:
                    logger.info("content_processing_skipped", content_id=content_id, reason=str(content.status))
                    return content.status

                if force:
                    content = await store.set_status(content_id, ContentStatus.PROCESSING, force=True)

                logger.info("content_processing_started", content_id=content_id, type=str(content.type), force=force)

                try:
                    await self._run_pipeline(store, content)
                except Exception as e:
                    logger.exception("content_processing_failed", content_id=content_id, error=str(e))
                    await db.rollback()
                    await self.degrade_to_partial(content_id, str(e))

            return await self._final_status(content_id)

    async def _run_pipeline(self, store: ContentStore, content: Content) -> None:
        content_type = ContentType(content.type)
        if content_type == ContentType.PDF:
            await self._process_pdf(store, content)
        elif content_type == ContentType.YOUTUBE:
            await self._process_youtube(store, content)
        elif content_type == ContentType.TEXT:
            await self._process_text(store, content)
        else:
            await self._mark_partial(store, content.id, f"No processing pipeline for {content_type} content")

    async def _final_status(self, content_id: str) -> Optional[ContentStatus]:
        async with self.session_factory() as db:
            content = await ContentStore(db).get_content(content_id)
            if content is None:
                return None
            logger.info("content_processing_finished", content_id=content_id, status=str(content.status))
            return ContentStatus(content.status)

    async def degrade_to_partial(self, content_id: str, reason: str) -> None:
        """
        Leave the record in a client-resumable state after an unexpected error.

        COMPLETE and ERROR keep their status; the reason is always recorded.
        """
        failure = {
            "processing_error": reason[:500],
            "processing_failed_at": datetime.now(timezone.utc).isoformat(),
        }
        async with self.session_factory() as db:
            store = ContentStore(db)
            content = await store.get_content(content_id)
            if content is None:
                return
            if content.status in (ContentStatus.COMPLETE, ContentStatus.ERROR):
                await store.merge_metadata(content_id, failure)
            else:
                await store.update_content(content_id, metadata=failure, status=ContentStatus.PARTIAL)
        logger.warning("content_degraded_to_partial", content_id=content_id, reason=reason[:200])

    # ========================================
    # PDF
    # ========================================

    async def _process_pdf(self, store: ContentStore, content: Content) -> None:
        content_id = content.id
        storage_path = content.metadata_bag.get("storagePath")

        data = None
        if storage_path:
            try:
                data = await self.blob_store.download(storage_path)
            except (BlobStorageError, OSError) as e:
                logger.warning("pdf_download_failed", content_id=content_id, storage_path=storage_path, error=str(e))

        if not data:
            await self._mark_partial(store, content_id, "No file bytes available")
            return

        try:
            document = await asyncio.wait_for(
                self.pdf_service.extract_document(data),
                timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            await self._mark_partial(store, content_id, "Text extraction timed out")
            return
        except ExtractionFailure as e:
            await self._mark_partial(store, content_id, f"Text extraction failed: {e.message}")
            return

        text, page_offsets = join_pages(document.page_texts)
        if not text:
            await self._mark_partial(store, content_id, "PDF contains no extractable text")
            return

        filename = _TIMESTAMP_PREFIX_RE.sub("", os.path.basename(storage_path))
        extracted = analyze_text(text, info_title=document.info_title, filename=filename)

        updates: Dict[str, Any] = {
            "source": "pdf",
            "storagePath": storage_path,
            "pages": document.page_count,
            "info": document.info,
            "grade": extracted.grade,
            "chapter": extracted.chapter,
            "chapter_number": extracted.chapter_number,
        }
        if extracted.title:
            updates["display_title"] = extracted.title

        await store.update_content(
            content_id,
            extracted_text=text,
            metadata=updates,
            title=extracted.title,
            status=ContentStatus.READY,
        )
        logger.info(
            "pdf_text_extracted",
            content_id=content_id,
            pages=document.page_count,
            chars=len(text),
            title=extracted.title,
        )

        await self._save_chunks(store, content_id, self.chunker.chunk_text(text, page_offsets=page_offsets))

        await asyncio.gather(
            self._refine_title(content_id, text),
            self._summarize(content_id, text),
        )

    async def _refine_title(self, content_id: str, text: str) -> None:
        """AI title pass on the first page; every failure leaves the heuristic title."""
        try:
            title = await self.ai_service.refine_title(text[:settings.TITLE_REFINEMENT_CHARS])
        except Exception as e:
            logger.warning("title_refinement_failed", content_id=content_id, error=str(e))
            return

        if not title:
            return

        try:
            async with self.session_factory() as db:
                await ContentStore(db).update_content(
                    content_id,
                    metadata={"display_title": title},
                    title=title,
                )
        except PersistenceFailure as e:
            logger.warning("title_refinement_not_saved", content_id=content_id, error=str(e))
            return
        logger.info("title_refined", content_id=content_id, title=title)

    # ========================================
    # YouTube
    # ========================================

    async def _process_youtube(self, store: ContentStore, content: Content) -> None:
        content_id = content.id
        video_id = content.metadata_bag.get("videoId")
        if not video_id and content.raw_url:
            video_id = YouTubeService.extract_video_id_from_url(content.raw_url)
        if not video_id:
            await self._mark_partial(store, content_id, "No video id")
            return

        video = await self.youtube_service.resolve_video_metadata(video_id)
        if video.source == "fallback":
            # Keep whatever an earlier lookup stored
            await store.merge_metadata(content_id, {"videoId": video_id, "source": "youtube"})
        else:
            await store.update_content(content_id, metadata=video.to_metadata(), title=video.title)

        try:
            transcript = await asyncio.wait_for(
                self.transcript_service.get_transcript(video_id),
                timeout=settings.TRANSCRIPT_TIMEOUT_SECONDS,
            )
        except NoTranscriptAvailable as e:
            logger.info("transcript_unavailable", content_id=content_id, video_id=video_id, reason=str(e))
            transcript = None
        except (TranscriptError, asyncio.TimeoutError) as e:
            logger.warning("transcript_fetch_failed", content_id=content_id, video_id=video_id, error=str(e))
            transcript = None

        if transcript is None:
            await self._mark_partial(store, content_id, "No transcript available")
            return

        text = sanitize_text(transcript.text)
        chunks = self.chunker.chunk_transcript(transcript.segments)
        await self._save_chunks(store, content_id, chunks, transcript=text)
        await store.update_content(
            content_id,
            extracted_text=text,
            metadata={"transcript_language": transcript.language, "transcript_type": transcript.type},
            status=ContentStatus.READY,
        )
        logger.info("transcript_processed", content_id=content_id, chunks=len(chunks), chars=len(text))

        await self._summarize(content_id, text)

    # ========================================
    # Text
    # ========================================

    async def _process_text(self, store: ContentStore, content: Content) -> None:
        content_id = content.id
        text = sanitize_text(content.extracted_text or "")
        if not text:
            await self._mark_partial(store, content_id, "No text to process")
            return

        await self._save_chunks(store, content_id, self.chunker.chunk_text(text))
        await store.update_content(content_id, extracted_text=text, status=ContentStatus.READY)

        await self._summarize(content_id, text)

    # ========================================
    # Shared Steps
    # ========================================

    async def _mark_partial(self, store: ContentStore, content_id: str, note: str) -> None:
        await store.update_content(
            content_id,
            metadata={"processing_note": note},
            status=ContentStatus.PARTIAL,
        )
        logger.info("content_marked_partial", content_id=content_id, note=note)

    async def _save_chunks(
        self,
        store: ContentStore,
        content_id: str,
        chunks: List[Dict[str, Any]],
        transcript: Optional[str] = None,
    ) -> None:
        try:
            await store.upsert_processed(content_id, chunks=chunks, transcript=transcript)
        except PersistenceFailure as e:
            logger.error("chunks_not_saved", content_id=content_id, error=str(e))
            return
        logger.info("chunks_saved", content_id=content_id, count=len(chunks))

    async def _summarize(self, content_id: str, text: str) -> bool:
        """
        Generate and store a summary; COMPLETE on success.

        Returns:
            True if a summary was stored
        """
        try:
            summary = await self.ai_service.summarize(text)
        except Exception as e:
            logger.warning("summary_generation_failed", content_id=content_id, error=str(e))
            return False

        try:
            async with self.session_factory() as db:
                await ContentStore(db).save_summary(content_id, summary)
        except (PersistenceFailure, InvalidStatusTransition) as e:
            logger.error("summary_not_saved", content_id=content_id, error=str(e))
            return False

        logger.info("summary_saved", content_id=content_id, chars=len(summary))
        return True


def get_content_processor() -> ContentProcessor:
    """Get content processor instance."""
    return ContentProcessor()
