"""
YouTube video metadata service.

Resolves the canonical title, thumbnail and channel of a video with a chain
of fallbacks, so ingestion always gets *something* to show:

1. YouTube Data API v3 (``videos().list``), when YOUTUBE_API_KEY is set
2. Public oEmbed endpoint (no key required)
3. Predictable CDN thumbnail and the "YouTube Video" placeholder title
"""

import asyncio
import re
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional
from urllib.parse import urlparse, parse_qs

import requests
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.core.config import settings
from app.services.metadata_extractor import YOUTUBE_PLACEHOLDER

logger = logging.getLogger(__name__)


class YouTubeAPIError(Exception):
    """Base exception for YouTube API errors."""
    pass


class YouTubeQuotaExceededError(YouTubeAPIError):
    """Raised when YouTube API quota is exceeded."""
    pass


class YouTubeVideoNotFoundError(YouTubeAPIError):
    """Raised when a YouTube video is not found."""
    pass


@dataclass
class VideoMetadata:
    """
    Resolved video metadata.

    ``source`` records which lookup produced the title:
    "api", "oembed" or "fallback".
    """

    video_id: str
    title: str
    thumbnail: str
    channel_title: Optional[str] = None
    source: str = "fallback"

    def to_metadata(self) -> Dict:
        """Keys merged into Content.metadata for youtube content."""
        return {
            "videoId": self.video_id,
            "source": "youtube",
            "title": self.title,
            "thumbnail": self.thumbnail,
            "channelTitle": self.channel_title,
        }

    def dict(self) -> Dict:
        return asdict(self)


class YouTubeService:
    """
    Service for resolving YouTube video metadata.

    The Data API client is optional: without an API key every lookup goes
    straight to oEmbed.

    Example:
        >>> youtube = YouTubeService()
        >>> video = await youtube.resolve_video_metadata("dQw4w9WgXcQ")
        >>> print(video.title, video.thumbnail)
    """

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize YouTube service.

        Args:
            api_key: YouTube Data API key. If None, uses settings.YOUTUBE_API_KEY
        """
        self.api_key = api_key or settings.YOUTUBE_API_KEY
        self.timeout = settings.YOUTUBE_REQUEST_TIMEOUT
        self._youtube = None

        if self.api_key:
            self._initialize_client()
        else:
            logger.info("No YouTube API key configured, using oEmbed lookups only")

    def _initialize_client(self) -> None:
        """Initialize YouTube API client."""
        try:
            self._youtube = build(
                'youtube',
                'v3',
                developerKey=self.api_key,
                cache_discovery=False  # Avoid caching issues in production
            )
            logger.info("YouTube API client initialized successfully")
        except Exception as e:
            # Fall back to oEmbed rather than failing ingestion
            logger.error(f"Failed to initialize YouTube API client: {e}")
            self._youtube = None

    @property
    def has_api_client(self) -> bool:
        return self._youtube is not None

    # ========================================
    # Video Operations
    # ========================================

    def _fetch_snippet(self, video_id: str) -> Dict:
        try:
            response = self._youtube.videos().list(
                part='snippet',
                id=video_id
            ).execute()
        except HttpError as e:
            if e.resp.status == 403:
                raise YouTubeQuotaExceededError("YouTube API quota exceeded")
            elif e.resp.status == 404:
                raise YouTubeVideoNotFoundError(f"Video not found: {video_id}")
            else:
                logger.error(f"YouTube API error: {e}")
                raise YouTubeAPIError(f"YouTube API error: {e}")

        if not response.get('items'):
            raise YouTubeVideoNotFoundError(f"Video not found: {video_id}")
        return response['items'][0]['snippet']

    async def get_video_snippet(self, video_id: str) -> Dict:
        """
        Get title, channel and thumbnail of a video from the Data API.

        Returns:
            {'title': str, 'channel_title': str, 'thumbnail_url': str | None}

        Raises:
            YouTubeVideoNotFoundError: If video doesn't exist
            YouTubeQuotaExceededError: If API quota exceeded
            YouTubeAPIError: For other API errors, or when no client is configured
        """
        if not self._youtube:
            raise YouTubeAPIError("YouTube Data API client is not configured")

        try:
            snippet = await asyncio.wait_for(
                asyncio.to_thread(self._fetch_snippet, video_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise YouTubeAPIError(f"YouTube API timed out after {self.timeout}s")
        except YouTubeAPIError:
            raise
        except Exception as e:
            # Unreachable host: socket / httplib2 errors from the client
            logger.error(f"YouTube API request failed for {video_id}: {e}")
            raise YouTubeAPIError(f"YouTube API request failed: {e}")

        return {
            'title': snippet.get('title', ''),
            'channel_title': snippet.get('channelTitle'),
            'thumbnail_url': self._best_thumbnail(snippet.get('thumbnails', {})),
        }

    def _fetch_oembed(self, video_id: str) -> Dict:
        response = requests.get(
            settings.YOUTUBE_OEMBED_URL,
            params={
                'url': f"https://www.youtube.com/watch?v={video_id}",
                'format': 'json',
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def get_oembed(self, video_id: str) -> Dict:
        """
        Public oEmbed lookup.

        Returns:
            {'title': str, 'channel_title': str | None, 'thumbnail_url': str | None}

        Raises:
            YouTubeAPIError: On any network or HTTP failure
        """
        try:
            data = await asyncio.to_thread(self._fetch_oembed, video_id)
        except (requests.RequestException, ValueError) as e:
            raise YouTubeAPIError(f"oEmbed lookup failed for {video_id}: {e}")

        return {
            'title': data.get('title', ''),
            'channel_title': data.get('author_name'),
            'thumbnail_url': data.get('thumbnail_url'),
        }

    async def resolve_video_metadata(self, video_id: str) -> VideoMetadata:
        """
        Resolve title/thumbnail/channel, never raising.

        The CDN thumbnail is used whenever no lookup returned one, and the
        title is the placeholder only when both lookups failed.
        """
        result: Optional[Dict] = None
        source = "fallback"

        if self._youtube:
            try:
                result = await self.get_video_snippet(video_id)
                source = "api"
            except YouTubeAPIError as e:
                logger.warning(f"YouTube API lookup failed for {video_id}, trying oEmbed: {e}")

        if not result or not result.get('title'):
            try:
                result = await self.get_oembed(video_id)
                source = "oembed"
            except YouTubeAPIError as e:
                logger.warning(str(e))
                result = None
                source = "fallback"

        result = result or {}
        return VideoMetadata(
            video_id=video_id,
            title=(result.get('title') or '').strip() or YOUTUBE_PLACEHOLDER,
            thumbnail=result.get('thumbnail_url') or self.default_thumbnail(video_id),
            channel_title=result.get('channel_title'),
            source=source if result.get('title') else "fallback",
        )

    # ========================================
    # Utility Functions
    # ========================================

    @staticmethod
    def default_thumbnail(video_id: str) -> str:
        return settings.YOUTUBE_THUMBNAIL_URL_TEMPLATE.format(video_id=video_id)

    @staticmethod
    def extract_video_id_from_url(url: str) -> Optional[str]:
        """
        Extract video ID from YouTube URL.

        Supports multiple URL formats:
        - https://www.youtube.com/watch?v=VIDEO_ID
        - https://youtu.be/VIDEO_ID
        - https://www.youtube.com/embed/VIDEO_ID
        - https://www.youtube.com/shorts/VIDEO_ID
        - a bare 11-character VIDEO_ID

        Args:
            url: YouTube URL

        Returns:
            Video ID if found and well-formed, None otherwise
        """
        if not url:
            return None
        url = url.strip()
        if YouTubeService.validate_video_id(url):
            return url

        if '://' not in url:
            url = f"https://{url}"
        parsed = urlparse(url)
        video_id = None

        if 'youtube.com' in parsed.netloc:
            query_params = parse_qs(parsed.query)
            if 'v' in query_params:
                video_id = query_params['v'][0]
            else:
                # /embed/ID, /shorts/ID, /live/ID
                match = re.match(r'^/(?:embed|shorts|live|v)/([^/?#]+)', parsed.path)
                if match:
                    video_id = match.group(1)

        # Short URL: youtu.be/VIDEO_ID
        elif 'youtu.be' in parsed.netloc:
            video_id = parsed.path.lstrip('/').split('/')[0]

        if video_id and YouTubeService.validate_video_id(video_id):
            return video_id
        return None

    @staticmethod
    def validate_video_id(video_id: str) -> bool:
        """
        Validate YouTube video ID format.

        Video IDs are 11 characters long containing alphanumeric
        characters, hyphens, and underscores.
        """
        if not video_id or len(video_id) != 11:
            return False

        return bool(re.match(r'^[a-zA-Z0-9_-]{11}$', video_id))

    @staticmethod
    def _best_thumbnail(thumbnails: Dict) -> Optional[str]:
        return (
            thumbnails.get('maxres', {}).get('url') or
            thumbnails.get('high', {}).get('url') or
            thumbnails.get('medium', {}).get('url') or
            thumbnails.get('default', {}).get('url')
        )


# ========================================
# Helper Functions
# ========================================

def get_youtube_service() -> YouTubeService:
    """
    Get or create YouTube service instance.

    Returns:
        YouTubeService instance
    """
    return YouTubeService()
