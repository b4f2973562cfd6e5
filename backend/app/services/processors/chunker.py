"""
Content Chunking Service

Splits extracted text into ordered chunks for search and chat retrieval.

Chunking Strategies:
--------------------
1. Documents (pdf, text): token-bounded spans that break on sentence or line
   boundaries. Chunks are exact, non-overlapping slices of the source, so
   joining chunk texts in index order reproduces the sanitized text.
2. YouTube: transcript segments grouped into ~1000 character windows, each
   tagged with the timestamp of its first segment.

Configuration from settings:
- CHUNK_SIZE_TOKENS: 800 (default)
- TRANSCRIPT_CHUNK_CHARS: 1000 (default)
- CHUNKS_PER_PAGE_ESTIMATE: 5 (page guess when no page offsets are known)
"""

import re
from typing import Any, Optional, Sequence

import tiktoken

from app.core.config import settings
from app.services.processors.sanitizer import page_for_offset

# Split points: after sentence punctuation (before the following whitespace)
# and after every newline. Zero-width, so no characters are dropped.
_BOUNDARY_RE = re.compile(r"(?<=[.!?])(?=\s)|(?<=\n)")

# Rough characters-per-token ratio used to hard-split oversized spans
_CHARS_PER_TOKEN = 4


def format_timestamp(seconds: float) -> str:
    """
    65 → "1:05", 3725 → "1:02:05"
    """
    total = int(max(0, seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class ContentChunker:
    """
    Token-aware chunker for extracted documents and transcripts.

    Usage:
    ------
    chunker = ContentChunker()
    chunks = chunker.chunk_text(text, page_offsets=offsets)
    assert "".join(c["text"] for c in chunks) == text

    Each chunk is a dict:
    - index: 0-based position
    - text: exact span of the source
    - page / timestamp / start / end: positional metadata when known
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        transcript_chunk_chars: Optional[int] = None,
    ):
        """
        Args:
            chunk_size: Max tokens per document chunk (default from settings)
            transcript_chunk_chars: Target characters per transcript chunk
        """
        self.chunk_size = chunk_size or settings.CHUNK_SIZE_TOKENS
        self.transcript_chunk_chars = transcript_chunk_chars or settings.TRANSCRIPT_CHUNK_CHARS

        # cl100k_base is a good general-purpose tokenizer
        try:
            self.tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception:
            # Encoding download can fail in offline workers
            self.tokenizer = None

    def count_tokens(self, text: str) -> int:
        """
        Count tokens in text using tiktoken.

        Args:
            text: Text to count tokens in

        Returns:
            Number of tokens
        """
        if self.tokenizer:
            return len(self.tokenizer.encode(text))
        # Rough approximation: 1 token ≈ 4 characters
        return len(text) // _CHARS_PER_TOKEN

    # ========================================
    # Document Chunking
    # ========================================

    def _split_spans(self, text: str) -> list[str]:
        """Sentence/line pieces, with oversized pieces hard-split by characters."""
        max_chars = self.chunk_size * _CHARS_PER_TOKEN
        spans = []
        for piece in _BOUNDARY_RE.split(text):
            if not piece:
                continue
            if self.count_tokens(piece) <= self.chunk_size:
                spans.append(piece)
                continue
            for start in range(0, len(piece), max_chars):
                spans.append(piece[start:start + max_chars])
        return spans

    def chunk_text(
        self,
        text: str,
        page_offsets: Optional[Sequence[int]] = None,
        estimate_pages: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Chunk a document into exact, non-overlapping spans.

        Args:
            text: Sanitized document text
            page_offsets: Start offset of each page in ``text`` (pdf)
            estimate_pages: Without offsets, guess pages as
                index // CHUNKS_PER_PAGE_ESTIMATE + 1

        Returns:
            List of chunk dictionaries in index order
        """
        if not text:
            return []

        chunks: list[dict[str, Any]] = []
        current: list[str] = []
        current_tokens = 0
        current_start = 0
        position = 0

        def flush() -> None:
            chunk: dict[str, Any] = {"index": len(chunks), "text": "".join(current)}
            if page_offsets:
                chunk["page"] = page_for_offset(page_offsets, current_start)
            elif estimate_pages:
                chunk["page"] = len(chunks) // settings.CHUNKS_PER_PAGE_ESTIMATE + 1
            chunks.append(chunk)

        for span in self._split_spans(text):
            span_tokens = self.count_tokens(span)
            if current and current_tokens + span_tokens > self.chunk_size:
                flush()
                current = []
                current_tokens = 0
                current_start = position

            current.append(span)
            current_tokens += span_tokens
            position += len(span)

        if current:
            flush()

        return chunks

    # ========================================
    # Transcript Chunking
    # ========================================

    def chunk_transcript(self, segments: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Group timed transcript segments into ~transcript_chunk_chars windows.

        Args:
            segments: [{"text": str, "start": float, "duration": float}, ...]

        Returns:
            Chunks with timestamp ("m:ss"), start and end seconds. Joining
            chunk texts with a single space reproduces the transcript text.
        """
        chunks: list[dict[str, Any]] = []
        current: list[str] = []
        current_length = 0
        current_start = 0.0
        current_end = 0.0

        def flush() -> None:
            chunks.append({
                "index": len(chunks),
                "text": " ".join(current),
                "timestamp": format_timestamp(current_start),
                "start": current_start,
                "end": current_end,
                "segment_count": len(current),
            })

        for segment in segments:
            text = (segment.get("text") or "").strip()
            if not text:
                continue

            start = float(segment.get("start", 0.0))
            end = start + float(segment.get("duration", 0.0))
            added_length = len(text) + (1 if current else 0)

            if current and current_length + added_length > self.transcript_chunk_chars:
                flush()
                current = []
                current_length = 0
                added_length = len(text)

            if not current:
                current_start = start

            current.append(text)
            current_length += added_length
            current_end = end

        if current:
            flush()

        return chunks


def get_chunker() -> ContentChunker:
    """Get chunker instance."""
    return ContentChunker()
