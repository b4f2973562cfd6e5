"""Business logic services."""

from app.services.content_processor import ContentProcessor, get_content_processor
from app.services.content_store import ContentStore
from app.services.ingestion import IngestionGateway, IngestPayload, get_ingestion_gateway
from app.services.youtube import YouTubeService, get_youtube_service
from app.services.transcript_service import TranscriptService, get_transcript_service

__all__ = [
    "ContentProcessor",
    "get_content_processor",
    "ContentStore",
    "IngestionGateway",
    "IngestPayload",
    "get_ingestion_gateway",
    "YouTubeService",
    "get_youtube_service",
    "TranscriptService",
    "get_transcript_service",
]
