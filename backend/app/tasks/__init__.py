"""
Celery tasks for background processing.
"""

from app.tasks.processing_tasks import (
    enqueue_content_processing,
    process_content,
    requeue_stale_content,
)

__all__ = [
    "enqueue_content_processing",
    "process_content",
    "requeue_stale_content",
]
