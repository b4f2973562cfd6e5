"""
Celery application instance and configuration.

Background processing runs here instead of as fire-and-forget coroutines:
messages are acknowledged only after the task finishes, so a worker crash
redelivers the content id to another worker.
"""

from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

# Create Celery application
celery_app = Celery(
    "learnchat",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=15 * 60,  # 15 minutes, matches the content lock TTL
    task_soft_time_limit=12 * 60,  # 12 minutes
    result_expires=3600,  # 1 hour
    # At-least-once delivery
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'requeue-stale-content': {
        'task': 'processing.requeue_stale_content',
        'schedule': crontab(minute='*/10'),  # Every 10 minutes
        'options': {'queue': 'processing'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'processing.*': {'queue': 'processing'},
}

# Auto-discover tasks from app.tasks
celery_app.autodiscover_tasks(['app.tasks'])
