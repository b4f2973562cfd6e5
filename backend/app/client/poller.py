"""
Bounded polling of one content item until its summary and title settle.

Two independent loops run per content view:

- poll_summary: triggers POST /process at most once per PollState when the
  record is ready or partial but has no summary, then polls
  GET /content/{id}/processed at a fixed interval until a summary appears
  or the attempt/time budget runs out.
- poll_title: while the visible title is a placeholder or a heading-shaped
  fragment, polls with a linearly growing delay. After enough failed
  attempts on a PDF it asks for a one-shot re-classification.

Every limit is a setting; the counters live in PollState so a view that is
re-opened resumes where it stopped instead of starting over.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from app.client.api import ClientRequestError, LearnChatClient
from app.client.events import (
    POLL_TIMED_OUT,
    STATUS_CHANGED,
    SUMMARY_READY,
    TITLE_CHANGED,
    ContentEvents,
)
from app.core.config import settings
from app.services.metadata_extractor import (
    is_generic_title,
    is_section_heading,
    is_suspicious_title,
)

logger = logging.getLogger(__name__)

SUMMARY_TRIGGER_STATUSES = frozenset({"ready", "partial"})


@dataclass
class PollState:
    """Per-content polling counters and latches."""

    title: str = ""
    status: Optional[str] = None
    summary: Optional[str] = None
    summary_triggered: bool = False
    classification_requested: bool = False
    title_poll_count: int = 0
    summary_poll_count: int = 0


@dataclass
class SummaryPollResult:
    summary: Optional[str]
    attempts: int
    timed_out: bool = False


@dataclass
class TitlePollResult:
    title: str
    attempts: int
    timed_out: bool = False
    reclassified: bool = False


def needs_title_polling(title: Optional[str]) -> bool:
    """True while ``title`` is a placeholder or looks like a section heading."""
    if is_generic_title(title):
        return True
    return is_section_heading(title) or is_suspicious_title(title)


def title_poll_delay(attempt: int) -> float:
    """Delay before title attempt ``attempt`` (0-based): grows linearly, capped."""
    delay = settings.TITLE_POLL_BASE_DELAY_SECONDS + settings.TITLE_POLL_DELAY_STEP_SECONDS * attempt
    return min(delay, settings.TITLE_POLL_MAX_DELAY_SECONDS)


def pick_title(content: Dict[str, Any]) -> Optional[str]:
    """
    Best title in a content payload: the record title, else the
    metadata display_title. None when both are placeholders.
    """
    title = content.get("title")
    if not is_generic_title(title):
        return title

    display_title = (content.get("metadata") or {}).get("display_title")
    if not is_generic_title(display_title):
        return display_title
    return None


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class ContentPoller:
    """
    Usage:
    ------
    async with LearnChatClient(base_url) as client:
        poller = ContentPoller(client, content_id)
        poller.events.subscribe(TITLE_CHANGED, render_title)
        await poller.run()
        poller.close()
    """

    def __init__(
        self,
        client: LearnChatClient,
        content_id: str,
        *,
        state: Optional[PollState] = None,
        events: Optional[ContentEvents] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.content_id = content_id
        self.state = state or PollState()
        self.events = events or ContentEvents()
        self._sleep = sleep
        self._clock = clock

    async def __aenter__(self) -> "ContentPoller":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.events.close()

    # ========================================
    # Shared helpers
    # ========================================

    async def _fetch(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.get_processed(self.content_id)
        except ClientRequestError as e:
            logger.warning(f"Poll for content {self.content_id} failed: {e.message}")
            return None

    async def _observe_status(self, content: Dict[str, Any]) -> None:
        status = content.get("status")
        if status and status != self.state.status:
            previous = self.state.status
            self.state.status = status
            await self.events.publish(STATUS_CHANGED, {"status": status, "previous": previous})

    async def _adopt_title(self, candidate: Optional[str]) -> bool:
        """Replace the visible title unless ``candidate`` is a placeholder."""
        if is_generic_title(candidate) or candidate == self.state.title:
            return False
        previous = self.state.title
        self.state.title = candidate
        await self.events.publish(TITLE_CHANGED, {"title": candidate, "previous": previous})
        return True

    async def _adopt_summary(self, summary: str) -> None:
        self.state.summary = summary
        await self.events.publish(SUMMARY_READY, {"summary": summary})

    # ========================================
    # Summary
    # ========================================

    async def _trigger_summary(self) -> Optional[str]:
        self.state.summary_triggered = True
        try:
            response = await self.client.trigger_processing(self.content_id)
        except ClientRequestError as e:
            # The latch stays set: a failing trigger is not resent every tick
            logger.warning(f"Summary trigger for content {self.content_id} failed: {e.message}")
            return None
        summary = response.get("summary")
        return summary if _has_text(summary) else None

    async def poll_summary(
        self,
        status: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> SummaryPollResult:
        """
        Wait for a non-empty summary.

        Args:
            status: Record status as last seen by the caller
            summary: Summary already shown, if any

        Returns:
            SummaryPollResult; ``timed_out`` when the budget ran out first
        """
        if status:
            self.state.status = status
        if _has_text(summary):
            self.state.summary = summary
        if _has_text(self.state.summary):
            return SummaryPollResult(summary=self.state.summary, attempts=0)

        if self.state.status in SUMMARY_TRIGGER_STATUSES and not self.state.summary_triggered:
            triggered = await self._trigger_summary()
            if triggered:
                await self._adopt_summary(triggered)
                return SummaryPollResult(summary=triggered, attempts=0)

        deadline = self._clock() + settings.SUMMARY_POLL_TIMEOUT_SECONDS
        attempts = 0
        while (
            self.state.summary_poll_count < settings.SUMMARY_POLL_MAX_ATTEMPTS
            and self._clock() < deadline
        ):
            await self._sleep(settings.SUMMARY_POLL_INTERVAL_SECONDS)
            self.state.summary_poll_count += 1
            attempts += 1

            data = await self._fetch()
            if data is None:
                continue

            content = data.get("content") or {}
            await self._observe_status(content)
            await self._adopt_title(pick_title(content))

            fetched = (data.get("processed") or {}).get("summary")
            if _has_text(fetched):
                await self._adopt_summary(fetched)
                return SummaryPollResult(summary=fetched, attempts=attempts)

            # Processing finished without a summary: ask once
            if self.state.status in SUMMARY_TRIGGER_STATUSES and not self.state.summary_triggered:
                triggered = await self._trigger_summary()
                if triggered:
                    await self._adopt_summary(triggered)
                    return SummaryPollResult(summary=triggered, attempts=attempts)

        logger.info(f"Summary polling for content {self.content_id} stopped after {attempts} attempts")
        await self.events.publish(POLL_TIMED_OUT, {"kind": "summary", "attempts": attempts})
        return SummaryPollResult(summary=None, attempts=attempts, timed_out=True)

    # ========================================
    # Title
    # ========================================

    async def _reclassify(self) -> bool:
        self.state.classification_requested = True
        try:
            response = await self.client.classify(self.content_id)
        except ClientRequestError as e:
            logger.warning(f"Re-classification of content {self.content_id} failed: {e.message}")
            return False
        display_title = (response.get("classification") or {}).get("display_title")
        return await self._adopt_title(display_title)

    async def poll_title(
        self,
        title: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> TitlePollResult:
        """
        Wait for a specific title.

        A placeholder never replaces a specific title. For PDFs, one
        re-classification is requested after RECLASSIFY_AFTER_ATTEMPTS
        unsuccessful attempts.
        """
        if title is not None:
            self.state.title = title
        if not needs_title_polling(self.state.title):
            return TitlePollResult(title=self.state.title, attempts=0)

        deadline = self._clock() + settings.TITLE_POLL_TIMEOUT_SECONDS
        attempts = 0
        reclassified = False
        while (
            self.state.title_poll_count < settings.TITLE_POLL_MAX_ATTEMPTS
            and self._clock() < deadline
        ):
            await self._sleep(title_poll_delay(self.state.title_poll_count))
            self.state.title_poll_count += 1
            attempts += 1

            data = await self._fetch()
            if data is not None:
                content = data.get("content") or {}
                await self._observe_status(content)
                await self._adopt_title(pick_title(content))
                if not needs_title_polling(self.state.title):
                    return TitlePollResult(title=self.state.title, attempts=attempts)

            if (
                content_type == "pdf"
                and self.state.title_poll_count >= settings.RECLASSIFY_AFTER_ATTEMPTS
                and not self.state.classification_requested
            ):
                reclassified = await self._reclassify()
                if not needs_title_polling(self.state.title):
                    return TitlePollResult(
                        title=self.state.title, attempts=attempts, reclassified=reclassified
                    )

        logger.info(f"Title polling for content {self.content_id} stopped after {attempts} attempts")
        await self.events.publish(POLL_TIMED_OUT, {"kind": "title", "attempts": attempts})
        return TitlePollResult(
            title=self.state.title, attempts=attempts, timed_out=True, reclassified=reclassified
        )

    # ========================================
    # Entry point
    # ========================================

    async def run(self) -> Dict[str, Any]:
        """
        Fetch the record once, then run both loops concurrently.

        Returns:
            {"title": TitlePollResult, "summary": SummaryPollResult}
        """
        data = await self._fetch() or {}
        content = data.get("content") or {}
        await self._observe_status(content)
        if content.get("title"):
            self.state.title = pick_title(content) or content["title"]

        summary = (data.get("processed") or {}).get("summary")
        title_result, summary_result = await asyncio.gather(
            self.poll_title(content_type=content.get("type")),
            self.poll_summary(summary=summary),
        )
        return {"title": title_result, "summary": summary_result}
