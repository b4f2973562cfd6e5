"""
Tests for on-demand summary generation.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from app.core.exceptions import ContentNotFound, InvalidInput, PersistenceFailure, RefinementFailure
from app.models.content import ContentStatus, ContentType, TriggerKind
from app.services.ai_service import AIServiceError
from app.services.content_store import ContentStore
from app.services.summary_service import SummaryService
from app.services.transcript_service import TranscriptResult

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.fixture
def ai_service():
    service = Mock()
    service.summarize = AsyncMock(return_value="## Overview\nFresh summary.")
    return service


@pytest.fixture
def transcript_service():
    service = Mock()
    service.get_transcript = AsyncMock(return_value=TranscriptResult(
        video_id=VIDEO_ID,
        segments=[{"text": "Cells divide", "start": 0.0, "duration": 2.0}],
        language="en",
        type="manual",
    ))
    return service


@pytest.fixture
def summary_service(db_session, ai_service, transcript_service):
    return SummaryService(db_session, ai_service=ai_service, transcript_service=transcript_service)


class TestSummaryService:

    async def test_existing_summary_is_returned(self, summary_service, make_content, make_processed, ai_service):
        content = await make_content(status=ContentStatus.COMPLETE)
        await make_processed(content.id, summary="## Overview\nStored.")

        outcome = await summary_service.generate(content.id)

        assert outcome.summary == "## Overview\nStored."
        assert outcome.created is False
        ai_service.summarize.assert_not_called()

    async def test_generates_and_completes(self, summary_service, db_session, make_content, ai_service):
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes on cells.")

        outcome = await summary_service.generate(content.id)

        assert outcome.created is True
        assert outcome.summary == "## Overview\nFresh summary."
        ai_service.summarize.assert_awaited_once_with("Notes on cells.")
        store = ContentStore(db_session)
        assert (await store.get_content(content.id)).status == ContentStatus.COMPLETE
        assert await store.get_trigger(content.id, TriggerKind.SUMMARY) is None

    async def test_partial_content_completes(self, summary_service, db_session, make_content):
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.PARTIAL, extracted_text="Notes.")

        await summary_service.generate(content.id)

        assert (await ContentStore(db_session).get_content(content.id)).status == ContentStatus.COMPLETE

    async def test_concurrent_request_is_told_in_progress(self, summary_service, db_session, make_content, ai_service):
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")
        await ContentStore(db_session).claim_trigger(content.id, TriggerKind.SUMMARY)

        outcome = await summary_service.generate(content.id)

        assert outcome.in_progress is True
        assert outcome.summary is None
        ai_service.summarize.assert_not_called()

    async def test_ai_failure_releases_claim(self, summary_service, db_session, make_content, ai_service):
        ai_service.summarize.side_effect = AIServiceError("overloaded")
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")

        with pytest.raises(AIServiceError):
            await summary_service.generate(content.id)

        store = ContentStore(db_session)
        assert await store.get_trigger(content.id, TriggerKind.SUMMARY) is None
        assert (await store.get_content(content.id)).status == ContentStatus.READY

    async def test_unexpected_model_error_is_a_refinement_failure(
        self, summary_service, db_session, make_content, ai_service,
    ):
        ai_service.summarize.side_effect = RuntimeError("connection reset")
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")

        with pytest.raises(RefinementFailure) as exc_info:
            await summary_service.generate(content.id)

        assert exc_info.value.status_code == 502
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await ContentStore(db_session).get_trigger(content.id, TriggerKind.SUMMARY) is None

    async def test_unexpected_save_error_is_a_persistence_failure(
        self, summary_service, db_session, make_content,
    ):
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")

        with patch.object(ContentStore, "save_summary", AsyncMock(side_effect=KeyError("summary"))):
            with pytest.raises(PersistenceFailure):
                await summary_service.generate(content.id)

        store = ContentStore(db_session)
        assert await store.get_trigger(content.id, TriggerKind.SUMMARY) is None
        assert (await store.get_content(content.id)).status == ContentStatus.READY

    async def test_text_recovered_from_chunks(self, summary_service, make_content, make_processed, ai_service):
        content = await make_content(status=ContentStatus.READY)
        await make_processed(content.id, chunks=[{"index": 1, "text": "b"}, {"index": 0, "text": "a "}])

        await summary_service.generate(content.id)

        ai_service.summarize.assert_awaited_once_with("a b")

    async def test_youtube_transcript_refetched(
        self, summary_service, db_session, make_content, ai_service, transcript_service
    ):
        content = await make_content(
            type=ContentType.YOUTUBE,
            status=ContentStatus.PARTIAL,
            content_metadata={"videoId": VIDEO_ID},
        )

        outcome = await summary_service.generate(content.id)

        assert outcome.created is True
        transcript_service.get_transcript.assert_awaited_once_with(VIDEO_ID)
        ai_service.summarize.assert_awaited_once_with("Cells divide")
        processed = await ContentStore(db_session).get_processed(content.id)
        assert processed.transcript == "Cells divide"
        assert processed.chunks[0]["text"] == "Cells divide"

    async def test_no_text(self, summary_service, make_content):
        content = await make_content(status=ContentStatus.PARTIAL)

        with pytest.raises(InvalidInput):
            await summary_service.generate(content.id)

    async def test_unknown_content(self, summary_service):
        with pytest.raises(ContentNotFound):
            await summary_service.generate("missing")
