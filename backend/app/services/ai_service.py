"""
AI Service for summaries, title refinement and document classification.

All three calls go through the Anthropic Messages API:
- summarize(): markdown study summary over the full extracted text
- refine_title(): short chapter/topic title from the first page (fast model)
- classify(): JSON document classification from the first page

Every call is bounded by AI_REQUEST_TIMEOUT_SECONDS and raises
AIServiceError on any failure; callers decide whether that is fatal.
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from anthropic import AsyncAnthropic, APIError

from app.core.config import settings
from app.core.exceptions import RefinementFailure
from app.services.metadata_extractor import (
    PDF_PLACEHOLDER,
    is_common_word,
    is_generic_subject,
    strip_chapter_prefix,
)

logger = logging.getLogger(__name__)


class AIServiceError(RefinementFailure):
    """Raised when an AI call fails, times out or returns nothing usable."""
    pass


# ========================================
# Prompts
# ========================================

SUMMARY_SYSTEM_PROMPT = """You are an expert educational tutor. You write study summaries for students aged 10-17.

Write plain, student-friendly markdown using EXACTLY these sections:

## Overview
2-3 sentences on the main idea of the whole lesson.

## Key Takeaways
Bullet list of the most important points to remember.

## Important Concepts
Bullet list of key terms or concepts, one per bullet.

## Questions to Think About
3-5 questions a student could answer after studying this content.

If the content is a video transcript with timing, you may append timestamps such as [03:15] after the relevant bullet.

Formatting rules:
- Normal markdown only (headings, bullets, text)
- Never wrap the answer in a code block
- Never return JSON
- Stay age-appropriate and focused on the educational material provided"""

TITLE_PROMPT = """Extract the SPECIFIC CHAPTER or TOPIC title from this document.

Rules:
1. Never answer with a generic subject name such as "Mathematics", "Science", "Physics", "Chemistry", "Biology" or "English"
2. Prefer multi-word titles over single words ("A Square and a Cube" beats "Lockers")
3. ALL CAPS or Title Case headings near the top are usually chapter titles
4. Nouns from the story content ("Lockers", "Queen", "Person") are not titles
5. Titles containing AND, OF, THE or A are usually full chapter titles

Text from the first page:
{text}

Examples:
- "1 A SQUARE AND A CUBE" -> A Square and a Cube
- "POLYNOMIALS 2" or "2 POLYNOMIALS" -> Polynomials
- "Chapter 9 Gravitation" -> Gravitation
- "WORK AND ENERGY" with chapter number 11 -> Work and Energy

Answer with ONLY the title in Title Case, without any "Chapter X" prefix."""

CLASSIFY_PROMPT = """Extract the MAIN TITLE of this PDF document and classify it.

Rules:
1. Section headings are never the title: skip "Introduction", "Abstract", "Methodology", "Methods", "Results", "Discussion", "Conclusion", "References"
2. Roman numeral sections like "I. INTRODUCTION" are never the title
3. Numbered sections like "1. Introduction" or "2. Background" are never the title
4. For research papers the title is the large text before the author names and the abstract
5. For textbooks use the chapter name, not a section heading
6. Prefer longer, descriptive titles (5+ words) over short section names

First page text:
{text}

Answer with ONLY a JSON object:
{{
  "display_title": "main document, paper or chapter title",
  "document_type": "Research Paper" | "Textbook" | "Notes" | "Exam" | "Slides" | "Article" | "Other",
  "subject": "Computer Science, Mathematics, Physics, ...",
  "grade": number | null,
  "book_name": string | null,
  "chapter": string | null,
  "chapter_number": number | null
}}

Examples:
- Textbook chapter "1 A SQUARE AND A CUBE" -> display_title "A Square and a Cube", chapter_number 1
- "I. INTRODUCTION" appears but the paper is "Deep Learning for Image Recognition" -> display_title "Deep Learning for Image Recognition\""""

_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_QUOTES_RE = re.compile(r"^[\"'“”‘’]+|[\"'“”‘’]+$")


# ========================================
# Response Cleaning
# ========================================

def clean_ai_title(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a model-proposed title, or None when it must be discarded.

    Discarded: generic subjects, denylisted common words, and lengths
    outside 4..199 characters.
    """
    if not raw:
        return None
    title = raw.strip().splitlines()[0].strip() if raw.strip() else ""
    title = strip_chapter_prefix(_QUOTES_RE.sub("", title).strip())
    if is_generic_subject(title) or is_common_word(title):
        return None
    if not 3 < len(title) < 200:
        return None
    return title


def fallback_classification(info_title: Optional[str] = None) -> Dict[str, Any]:
    return {
        "display_title": info_title or PDF_PLACEHOLDER,
        "document_type": "Other",
        "subject": "General",
        "grade": None,
        "book_name": None,
        "chapter": None,
        "chapter_number": None,
    }


def parse_classification(text: str, info_title: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse the classifier's answer: a fenced ```json block first, then the
    raw body, then a fallback classification.
    """
    candidates = []
    match = _JSON_BLOCK_RE.search(text or "")
    if match:
        candidates.append(match.group(1))
    candidates.append((text or "").strip())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(data, dict):
            return data

    logger.warning("Could not parse classification response, using fallback")
    return fallback_classification(info_title)


def finalize_classification(classification: Dict[str, Any]) -> Dict[str, Any]:
    """
    Clean display_title: strip a chapter prefix; if what is left is a
    common word, use the chapter name instead, or the PDF placeholder.
    """
    result = dict(classification)
    display_title = strip_chapter_prefix(str(result.get("display_title") or ""))

    if not display_title or is_common_word(display_title):
        chapter = result.get("chapter")
        if chapter and not is_common_word(str(chapter)):
            display_title = strip_chapter_prefix(str(chapter))
        else:
            display_title = PDF_PLACEHOLDER

    result["display_title"] = display_title
    result["classified_at"] = datetime.now(timezone.utc).isoformat()
    return result


class AIService:
    """
    Thin async wrapper around AsyncAnthropic.

    Usage:
    ------
    ai = AIService()
    summary = await ai.summarize(text)
    title = await ai.refine_title(first_page)      # None if unusable
    classification = await ai.classify(first_page, info_title="...")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        title_model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncAnthropic] = None,
    ):
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ANTHROPIC_MODEL
        self.title_model = title_model or settings.ANTHROPIC_TITLE_MODEL
        self.timeout = timeout or settings.AI_REQUEST_TIMEOUT_SECONDS
        self._client = client

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise AIServiceError("Anthropic API key is required. Set ANTHROPIC_API_KEY in environment.")
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def _complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        system: Optional[str] = None,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await asyncio.wait_for(
                self.client.messages.create(**kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise AIServiceError(f"AI request timed out after {self.timeout}s")
        except APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise AIServiceError(f"AI request failed: {e}") from e

        if not response.content:
            raise AIServiceError("AI response was empty")
        text = getattr(response.content[0], "text", "") or ""
        if not text.strip():
            raise AIServiceError("AI response was empty")
        return text.strip()

    async def summarize(self, text: str) -> str:
        """
        Generate a markdown study summary.

        Raises:
            AIServiceError: On failure or an empty summary
        """
        if not text or not text.strip():
            raise AIServiceError("Nothing to summarize")

        content = text[:settings.SUMMARY_MAX_INPUT_CHARS]
        logger.info(f"Summarizing {len(content)} chars with {self.model}")
        return await self._complete(
            f"Content:\n{content}",
            model=self.model,
            max_tokens=settings.ANTHROPIC_MAX_TOKENS,
            temperature=0.7,
            system=SUMMARY_SYSTEM_PROMPT,
        )

    async def refine_title(self, first_page: str) -> Optional[str]:
        """
        Ask the fast model for a chapter/topic title.

        Returns:
            Cleaned title, or None when the model answered with something
            on the denylist.

        Raises:
            AIServiceError: When the call itself failed
        """
        text = first_page[:settings.TITLE_REFINEMENT_CHARS]
        raw = await self._complete(
            TITLE_PROMPT.format(text=text),
            model=self.title_model,
            max_tokens=100,
            temperature=0.3,
        )
        title = clean_ai_title(raw)
        if title is None:
            logger.info(f"AI returned a generic title '{raw[:60]}', discarding")
        return title

    async def classify(self, first_page: str, info_title: Optional[str] = None) -> Dict[str, Any]:
        """
        Classify a document from its first page.

        Returns:
            Classification dict with a cleaned display_title and classified_at

        Raises:
            AIServiceError: When the call itself failed
        """
        text = first_page[:settings.CLASSIFY_FIRST_PAGE_CHARS]
        raw = await self._complete(
            CLASSIFY_PROMPT.format(text=text),
            model=self.title_model,
            max_tokens=500,
            temperature=0.3,
        )
        return finalize_classification(parse_classification(raw, info_title))


def get_ai_service() -> AIService:
    """Get AI service instance."""
    return AIService()
