"""
YouTube transcript extraction service with multiple fallback strategies.

This module provides transcript extraction with fallbacks:
1. Manual transcripts in preferred languages
2. Auto-generated captions in preferred languages
3. Manual transcript in any language
4. Auto-generated transcript in any language

Transcripts are optional for youtube content: NoTranscriptAvailable means
the video is processed as partial, not failed.
"""

import asyncio
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)

from app.core.config import settings

logger = logging.getLogger(__name__)


class TranscriptError(Exception):
    """Base exception for transcript-related errors."""
    pass


class NoTranscriptAvailable(TranscriptError):
    """Raised when no transcript is available for a video."""
    pass


@dataclass
class TranscriptResult:
    """
    A fetched transcript.

    ``segments`` are cleaned timed entries
    [{'text': str, 'start': float, 'duration': float}, ...] with empty
    entries dropped; ``text`` is their texts joined by single spaces.
    """

    video_id: str
    segments: List[Dict[str, Any]] = field(default_factory=list)
    language: Optional[str] = None
    type: str = "manual"

    @property
    def text(self) -> str:
        return ' '.join(segment['text'] for segment in self.segments)


class TranscriptService:
    """
    Service for extracting and cleaning YouTube video transcripts.

    Example:
        >>> service = TranscriptService()
        >>> result = await service.get_transcript("dQw4w9WgXcQ")
        >>> print(f"Got {len(result.text)} chars in {result.language}")
    """

    def __init__(self, api: Optional[YouTubeTranscriptApi] = None):
        """Initialize transcript service with configuration from settings."""
        self.api = api or YouTubeTranscriptApi()
        self.preferred_languages = settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES

    async def get_transcript(
        self,
        video_id: str,
        preferred_languages: Optional[List[str]] = None
    ) -> TranscriptResult:
        """
        Get transcript for a YouTube video with fallback strategies.

        The youtube-transcript-api client is blocking, so the lookup runs in
        a worker thread.

        Raises:
            NoTranscriptAvailable: If no transcript could be obtained
            TranscriptError: For any other retrieval failure
        """
        languages = preferred_languages or self.preferred_languages
        return await asyncio.to_thread(self._get_transcript, video_id, languages)

    def _get_transcript(self, video_id: str, languages: List[str]) -> TranscriptResult:
        try:
            transcript_list = self.api.list(video_id)
            transcript, kind = self._select_transcript(transcript_list, languages)
            if transcript is None:
                raise NoTranscriptAvailable(
                    f"No transcript available for video {video_id} in any language"
                )

            segments = self._clean_segments(transcript.fetch().to_raw_data())
            if not segments:
                raise NoTranscriptAvailable(f"Transcript for video {video_id} is empty")

            if transcript.language_code not in languages:
                logger.info(
                    f"Using {kind} transcript in non-preferred language "
                    f"{transcript.language_code} for video {video_id}"
                )

            return TranscriptResult(
                video_id=video_id,
                segments=segments,
                language=transcript.language_code,
                type=kind,
            )

        except NoTranscriptAvailable:
            # Re-raise as-is (don't wrap)
            raise
        except TranscriptsDisabled:
            raise NoTranscriptAvailable(f"Transcripts are disabled for video {video_id}")
        except VideoUnavailable:
            raise NoTranscriptAvailable(f"Video {video_id} is unavailable")
        except NoTranscriptFound:
            raise NoTranscriptAvailable(f"No transcript found for video {video_id}")
        except CouldNotRetrieveTranscript as e:
            logger.error(f"Could not retrieve transcript for {video_id}: {e}")
            raise TranscriptError(f"Failed to get transcript: {e}")
        except Exception as e:
            logger.error(f"Unexpected error getting transcript for {video_id}: {e}")
            raise TranscriptError(f"Failed to get transcript: {e}")

    def _select_transcript(self, transcript_list, languages: List[str]):
        """Return (transcript, 'manual' | 'auto') or (None, None)."""
        for lang in languages:
            try:
                return transcript_list.find_manually_created_transcript([lang]), 'manual'
            except NoTranscriptFound:
                continue

        for lang in languages:
            try:
                return transcript_list.find_generated_transcript([lang]), 'auto'
            except NoTranscriptFound:
                continue

        available = list(transcript_list)
        for transcript in available:
            if not transcript.is_generated:
                return transcript, 'manual'
        for transcript in available:
            if transcript.is_generated:
                return transcript, 'auto'
        return None, None

    def _clean_segments(self, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        segments = []
        for entry in entries:
            text = self.clean_transcript(entry.get('text', ''))
            if not text:
                continue
            segments.append({
                'text': text,
                'start': float(entry.get('start', 0.0)),
                'duration': float(entry.get('duration', 0.0)),
            })
        return segments

    @staticmethod
    def clean_transcript(text: str) -> str:
        """
        Clean and normalize transcript text.

        Removes:
        - Music/sound effect tags like [Music], [Applause]
        - Inline timestamps
        - Repeated punctuation and extra whitespace
        - Leftover HTML entities from auto-captions
        """
        if not text:
            return ""

        text = re.sub(r'\[.*?\]', '', text)

        # Remove timestamps (e.g., "00:01:23" or "1:23")
        text = re.sub(r'\d{1,2}:\d{2}(?::\d{2})?', '', text)

        text = text.replace('&nbsp;', ' ')
        text = text.replace('&amp;', '&')
        text = text.replace('&lt;', '<')
        text = text.replace('&gt;', '>')

        text = re.sub(r'\s+', ' ', text).strip()
        text = re.sub(r'([.!?])\1+', r'\1', text)

        return text


# ========================================
# Helper Functions
# ========================================

def get_transcript_service() -> TranscriptService:
    """
    Get or create transcript service instance.

    Returns:
        TranscriptService instance
    """
    return TranscriptService()
