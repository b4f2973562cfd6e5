"""
Content Store

Persistence operations for Content and its derived rows, with the record
invariants enforced in one place:

- Metadata is merged, never replaced: each write re-reads the row
  (SELECT ... FOR UPDATE on PostgreSQL) and shallow-merges only the keys
  supplied.
- Titles are monotonic: a generic placeholder never replaces a specific title.
- Status changes follow ALLOWED_TRANSITIONS, and COMPLETE requires a stored
  summary.
- ProcessedContent is upserted by content_id, so reprocessing replaces chunks
  instead of duplicating them.
- ContentTrigger rows act as one-shot idempotency keys.

Every public method commits its own transaction.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ContentNotFound,
    InvalidStatusTransition,
    PersistenceFailure,
)
from app.models.chat import ChatMessage, ChatSession
from app.models.content import (
    Content,
    ContentStatus,
    ContentTrigger,
    ProcessedContent,
    TriggerKind,
)
from app.services.metadata_extractor import is_generic_title

logger = logging.getLogger(__name__)


# ========================================
# State Machine
# ========================================

ALLOWED_TRANSITIONS: Dict[ContentStatus, frozenset] = {
    ContentStatus.PROCESSING: frozenset({
        ContentStatus.READY,
        ContentStatus.PARTIAL,
        ContentStatus.ERROR,
    }),
    ContentStatus.READY: frozenset({
        ContentStatus.READY,
        ContentStatus.PARTIAL,
        ContentStatus.COMPLETE,
        ContentStatus.ERROR,
    }),
    ContentStatus.PARTIAL: frozenset({
        ContentStatus.PARTIAL,
        ContentStatus.COMPLETE,
        ContentStatus.ERROR,
    }),
    ContentStatus.COMPLETE: frozenset({ContentStatus.COMPLETE}),
    ContentStatus.ERROR: frozenset(),
}


def can_transition(current: ContentStatus, target: ContentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[ContentStatus(current)]


def _age_seconds(timestamp: datetime) -> float:
    # SQLite hands back naive datetimes; they are stored as UTC
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - timestamp).total_seconds()


def should_replace_title(current: Optional[str], new: Optional[str]) -> bool:
    """
    Title monotonicity rule.

    A blank or generic title only replaces another generic title; a
    specific title replaces anything except an identical one.
    """
    if not new or not new.strip():
        return False
    if current is not None and new.strip() == current.strip():
        return False
    if is_generic_title(new):
        return is_generic_title(current)
    return True


class ContentStore:
    """
    Repository for Content, ProcessedContent, ContentTrigger and chat history.

    Usage:
    ------
    store = ContentStore(db)
    content = await store.require_content(content_id)
    await store.merge_metadata(content_id, {"grade": 8})
    await store.update_title(content_id, "A Square and a Cube")
    await store.set_status(content_id, ContentStatus.READY)
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================
    # Reads
    # ========================================

    async def get_content(
        self,
        content_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[Content]:
        """
        Load a Content row, always re-reading column values from the database.

        Args:
            for_update: Lock the row for the rest of the transaction
                (PostgreSQL; ignored by SQLite)
        """
        query = (
            select(Content)
            .where(Content.id == content_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def require_content(self, content_id: str, *, for_update: bool = False) -> Content:
        """
        Raises:
            ContentNotFound: If no content has this id
        """
        content = await self.get_content(content_id, for_update=for_update)
        if content is None:
            raise ContentNotFound(f"Content {content_id} not found")
        return content

    async def get_processed(self, content_id: str) -> Optional[ProcessedContent]:
        result = await self.db.execute(
            select(ProcessedContent)
            .where(ProcessedContent.content_id == content_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_chat_messages(self, content_id: str) -> List[ChatMessage]:
        """All persisted chat messages for a content item, oldest first."""
        result = await self.db.execute(
            select(ChatMessage)
            .join(ChatSession, ChatMessage.session_id == ChatSession.id)
            .where(ChatSession.content_id == content_id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        )
        return list(result.scalars().all())

    async def find_stale_processing(self, older_than_minutes: int) -> List[str]:
        """Ids of content stuck in PROCESSING since before the cutoff."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        result = await self.db.execute(
            select(Content.id)
            .where(Content.status == ContentStatus.PROCESSING)
            .where(Content.updated_at < cutoff)
            .order_by(Content.updated_at)
        )
        return list(result.scalars().all())

    # ========================================
    # In-transaction mutations (no commit)
    # ========================================

    @staticmethod
    def _merge(content: Content, updates: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**(content.content_metadata or {}), **updates}
        # New dict object so the JSON column is detected as changed
        content.content_metadata = merged
        return merged

    @staticmethod
    def _apply_title(content: Content, title: Optional[str]) -> bool:
        if not should_replace_title(content.title, title):
            return False
        content.title = title.strip()
        return True

    async def _transition(
        self,
        content: Content,
        target: ContentStatus,
        *,
        force: bool = False,
    ) -> None:
        current = ContentStatus(content.status)
        target = ContentStatus(target)

        if force and target == ContentStatus.PROCESSING and current != ContentStatus.ERROR:
            content.status = target
            return
        if current == target:
            return
        if not can_transition(current, target):
            raise InvalidStatusTransition(
                f"Cannot move content {content.id} from {current} to {target}"
            )
        if target == ContentStatus.COMPLETE:
            processed = await self.get_processed(content.id)
            if processed is None or not processed.has_summary:
                raise InvalidStatusTransition(
                    f"Content {content.id} cannot be complete without a summary"
                )
        content.status = target

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceFailure(f"Failed to {action}") from e

    # ========================================
    # Content Writes
    # ========================================

    async def merge_metadata(self, content_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Read-modify-write merge into the metadata bag.

        Keys not present in ``updates`` are preserved; keys present are
        last-writer-wins.

        Returns:
            The merged metadata
        """
        content = await self.require_content(content_id, for_update=True)
        merged = self._merge(content, updates)
        await self._commit(f"merge metadata for {content_id}")
        return merged

    async def update_title(self, content_id: str, title: Optional[str]) -> bool:
        """
        Set the title if it improves on the current one.

        Returns:
            True if the title changed
        """
        content = await self.require_content(content_id, for_update=True)
        changed = self._apply_title(content, title)
        if changed:
            await self._commit(f"update title for {content_id}")
        else:
            await self.db.rollback()
        return changed

    async def set_status(
        self,
        content_id: str,
        status: ContentStatus,
        *,
        force: bool = False,
    ) -> Content:
        """
        Move a content item through the state machine.

        Raises:
            InvalidStatusTransition: If the edge is not allowed, or COMPLETE
                is requested without a stored summary
        """
        content = await self.require_content(content_id, for_update=True)
        try:
            await self._transition(content, status, force=force)
        except InvalidStatusTransition:
            await self.db.rollback()
            raise
        await self._commit(f"set status for {content_id}")
        return content

    async def update_content(
        self,
        content_id: str,
        *,
        extracted_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        title: Optional[str] = None,
        status: Optional[ContentStatus] = None,
    ) -> Content:
        """
        Apply several changes to one record in a single transaction, with the
        same merge, title and transition rules as the individual methods.
        """
        content = await self.require_content(content_id, for_update=True)
        try:
            if extracted_text is not None:
                content.extracted_text = extracted_text
            if metadata:
                self._merge(content, metadata)
            self._apply_title(content, title)
            if status is not None:
                await self._transition(content, status)
        except InvalidStatusTransition:
            await self.db.rollback()
            raise
        await self._commit(f"update content {content_id}")
        return content

    # ========================================
    # ProcessedContent
    # ========================================

    async def upsert_processed(
        self,
        content_id: str,
        *,
        chunks: Optional[List[Dict[str, Any]]] = None,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> ProcessedContent:
        """
        Create or update the single ProcessedContent row for a content item.

        Only the fields passed are written; ``chunks`` replaces the whole list.
        A lost insert race is retried once as an update; a second integrity
        error raises PersistenceFailure.
        """
        for attempt in range(2):
            processed = await self.get_processed(content_id)
            if processed is None:
                processed = ProcessedContent(content_id=content_id, chunks=[])
                self.db.add(processed)

            if chunks is not None:
                processed.chunks = list(chunks)
            if transcript is not None:
                processed.transcript = transcript
            if summary is not None:
                processed.summary = summary

            try:
                await self.db.commit()
                return processed
            except IntegrityError as e:
                await self.db.rollback()
                if attempt:
                    logger.error(f"Upsert of processed content for {content_id} kept conflicting: {e}")
                    raise PersistenceFailure(
                        f"Failed to upsert processed content for {content_id}"
                    ) from e
                # Lost an insert race with another writer; update its row instead
                logger.warning(f"Processed content for {content_id} was inserted concurrently, retrying")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to upsert processed content for {content_id}: {e}")
                raise PersistenceFailure(f"Failed to upsert processed content for {content_id}") from e

    async def save_summary(self, content_id: str, summary: str) -> Content:
        """
        Store a summary and mark the content COMPLETE when its status allows.

        Content still in PROCESSING keeps its status; the pipeline completes
        it once extraction has finished.
        """
        await self.upsert_processed(content_id, summary=summary)
        content = await self.require_content(content_id, for_update=True)
        if can_transition(content.status, ContentStatus.COMPLETE):
            await self._transition(content, ContentStatus.COMPLETE)
            await self._commit(f"complete content {content_id}")
        else:
            await self.db.rollback()
        return content

    # ========================================
    # Idempotency Keys
    # ========================================

    async def get_trigger(self, content_id: str, kind: TriggerKind) -> Optional[ContentTrigger]:
        result = await self.db.execute(
            select(ContentTrigger)
            .where(ContentTrigger.content_id == content_id)
            .where(ContentTrigger.kind == kind)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def claim_trigger(
        self,
        content_id: str,
        kind: TriggerKind,
        *,
        stale_after_seconds: Optional[float] = None,
    ) -> bool:
        """
        Claim a one-shot operation.

        Args:
            stale_after_seconds: A claim older than this that never stored a
                result is treated as abandoned and taken over

        Returns:
            True if this caller claimed it, False if it was already claimed
        """
        self.db.add(ContentTrigger(content_id=content_id, kind=kind))
        try:
            await self.db.commit()
            return True
        except IntegrityError:
            await self.db.rollback()

        if stale_after_seconds is None:
            return False

        existing = await self.get_trigger(content_id, kind)
        if existing is None or existing.result is not None:
            return False
        if _age_seconds(existing.created_at) < stale_after_seconds:
            return False

        logger.warning(f"Taking over abandoned {kind} claim for {content_id}")
        existing.created_at = datetime.now(timezone.utc)
        await self._commit(f"take over {kind} claim for {content_id}")
        return True

    async def store_trigger_result(
        self,
        content_id: str,
        kind: TriggerKind,
        result: Dict[str, Any],
    ) -> None:
        trigger = await self.get_trigger(content_id, kind)
        if trigger is None:
            trigger = ContentTrigger(content_id=content_id, kind=kind)
            self.db.add(trigger)
        trigger.result = result
        await self._commit(f"store {kind} result for {content_id}")

    async def release_trigger(self, content_id: str, kind: TriggerKind) -> None:
        """Delete a claim so the operation can be attempted again."""
        trigger = await self.get_trigger(content_id, kind)
        if trigger is None:
            return
        await self.db.delete(trigger)
        await self._commit(f"release {kind} trigger for {content_id}")
