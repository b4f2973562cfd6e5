"""
Celery tasks for background content processing.

This module contains:
- process_content: runs the ContentProcessor pipeline for one content id
- requeue_stale_content: periodic sweeper for content stuck in PROCESSING
  (lost messages, failed enqueues)

Delivery is at-least-once (acks_late + reject_on_worker_lost). Retryable
failures (lease held by another run, Redis unavailable) back off with
jitter; anything that exhausts retries goes through the dead-letter hook in
ProcessingTask.on_failure, which leaves the record PARTIAL instead of
stranded in PROCESSING. The sweeper has its own base and only logs failures.
"""

import asyncio
from typing import Any, Optional

import nest_asyncio
from celery import Task

from app.core.config import settings
from app.core.exceptions import ContentBusy, TransientProcessingError
from app.core.logging import get_logger
from app.db.redis import close_redis
from app.db.session import AsyncSessionLocal, engine
from app.services.content_processor import get_content_processor
from app.services.content_store import ContentStore
from app.workers.celery_app import celery_app

# Apply nest_asyncio to allow nested event loops in Celery workers
nest_asyncio.apply()

logger = get_logger(__name__)


# ========================================
# Helper Functions
# ========================================

def run_async(coro):
    """
    Run async coroutine in Celery task context.

    Uses asyncio.run() with nest_asyncio applied at module level
    to handle potential nested event loop scenarios.
    """
    return asyncio.run(coro)


async def _release_connections() -> None:
    # Each task runs its own event loop; pooled connections cannot outlive it
    await close_redis()
    await engine.dispose()


def _content_id_from(args: Any, kwargs: Any) -> Optional[str]:
    if args:
        return args[0]
    return (kwargs or {}).get('content_id')


# ========================================
# Base Task Class
# ========================================

class ProcessingTask(Task):
    """Base task class with retry, at-least-once delivery and dead-lettering."""

    autoretry_for = (ContentBusy, TransientProcessingError)
    retry_kwargs = {'max_retries': settings.PROCESSING_MAX_RETRIES}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True
    acks_late = True
    reject_on_worker_lost = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Dead-letter path: the task failed for good."""
        content_id = _content_id_from(args, kwargs)
        logger.error(
            "content_processing_dead_lettered",
            task_id=task_id,
            content_id=content_id,
            error=str(exc),
        )
        if not content_id:
            return
        if isinstance(exc, ContentBusy):
            # The run holding the lease settles the record itself
            return

        async def _dead_letter():
            try:
                await get_content_processor().degrade_to_partial(
                    content_id,
                    f"Processing failed after retries: {exc}",
                )
            finally:
                await _release_connections()

        try:
            run_async(_dead_letter())
        except Exception as e:
            logger.error("dead_letter_update_failed", content_id=content_id, error=str(e))


class SweeperTask(Task):
    """Base for periodic maintenance: no content id, so no dead-lettering."""

    acks_late = True

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error("maintenance_task_failed", task=self.name, task_id=task_id, error=str(exc))


# ========================================
# Main Tasks
# ========================================

@celery_app.task(
    base=ProcessingTask,
    name='processing.process_content',
    bind=True,
)
def process_content(self, content_id: str, force: bool = False) -> dict:
    """
    Run the background pipeline for one content item.

    Args:
        content_id: Content to process
        force: Reprocess a settled (COMPLETE / PARTIAL) record

    Returns:
        {
            'success': bool,
            'content_id': str,
            'status': str | None
        }
    """

    async def _process():
        try:
            return await get_content_processor().process(content_id, force=force)
        finally:
            await _release_connections()

    status = run_async(_process())

    if status is None:
        return {
            'success': False,
            'content_id': content_id,
            'status': None,
            'error': f'Content {content_id} not found',
        }

    return {
        'success': True,
        'content_id': content_id,
        'status': str(status),
    }


@celery_app.task(
    base=SweeperTask,
    name='processing.requeue_stale_content',
    bind=True,
)
def requeue_stale_content(self, older_than_minutes: Optional[int] = None) -> dict:
    """
    Re-enqueue content left in PROCESSING longer than the cutoff.

    Returns:
        {
            'success': True,
            'requeued': int,
            'content_ids': List[str]
        }
    """
    minutes = older_than_minutes or settings.STALE_PROCESSING_MINUTES

    async def _find_stale():
        try:
            async with AsyncSessionLocal() as db:
                return await ContentStore(db).find_stale_processing(minutes)
        finally:
            await _release_connections()

    content_ids = run_async(_find_stale())

    requeued = []
    for content_id in content_ids:
        try:
            enqueue_content_processing(content_id)
            requeued.append(content_id)
        except Exception as e:
            logger.error("content_requeue_failed", content_id=content_id, error=str(e))

    if requeued:
        logger.warning("stale_content_requeued", count=len(requeued), older_than_minutes=minutes)

    return {
        'success': True,
        'requeued': len(requeued),
        'content_ids': requeued,
    }


def enqueue_content_processing(content_id: str, force: bool = False):
    """Queue background processing for a content id. Returns the AsyncResult."""
    return process_content.apply_async(args=[content_id], kwargs={'force': force})
