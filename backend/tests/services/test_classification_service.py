"""
Tests for one-shot PDF re-classification.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from app.core.exceptions import ContentBusy, ContentNotFound, InvalidInput
from app.models.content import ContentType, TriggerKind
from app.services.ai_service import AIServiceError
from app.services.classification_service import ClassificationService
from app.services.content_store import ContentStore
from app.services.pdf_service import PDFService
from app.services.storage import LocalBlobStore

CLASSIFICATION = {
    "display_title": "A Square and a Cube",
    "document_type": "Textbook",
    "subject": "Mathematics",
    "grade": None,
    "book_name": "Ganita Prakash",
    "chapter": "A Square and a Cube",
    "chapter_number": 1,
    "classified_at": "2026-10-19T00:00:00+00:00",
}


@pytest.fixture
def ai_service():
    service = Mock()
    service.classify = AsyncMock(return_value=dict(CLASSIFICATION))
    return service


@pytest.fixture
def blob_store(blob_root):
    return LocalBlobStore(str(blob_root))


@pytest.fixture
def classification_service(db_session, ai_service, blob_store):
    return ClassificationService(
        db_session,
        ai_service=ai_service,
        pdf_service=PDFService(),
        blob_store=blob_store,
    )


@pytest.fixture
async def pdf_content(make_content, blob_store, make_pdf, workspace):
    path = f"pdfs/{workspace.id}/1700000000000-ch1.pdf"
    await blob_store.upload(path, make_pdf([["I. INTRODUCTION", "Squares of numbers"]], title="Maths"))
    return await make_content(
        title="Introduction",
        content_metadata={"storagePath": path, "grade": 8},
    )


class TestClassificationService:

    async def test_classifies_and_merges(self, classification_service, db_session, pdf_content, ai_service):
        outcome = await classification_service.classify(pdf_content.id)

        assert outcome.cached is False
        assert outcome.classification["display_title"] == "A Square and a Cube"
        first_page, = ai_service.classify.await_args.args
        assert "INTRODUCTION" in first_page
        assert ai_service.classify.await_args.kwargs["info_title"] == "Maths"

        stored = await ContentStore(db_session).get_content(pdf_content.id)
        assert stored.title == "A Square and a Cube"
        metadata = stored.content_metadata
        assert metadata["display_title"] == "A Square and a Cube"
        assert metadata["document_type"] == "Textbook"
        assert metadata["chapter_number"] == 1
        assert metadata["grade"] == 8
        assert metadata["storagePath"] == pdf_content.content_metadata["storagePath"]

    async def test_repeat_call_is_cached(self, classification_service, pdf_content, ai_service):
        await classification_service.classify(pdf_content.id)
        outcome = await classification_service.classify(pdf_content.id)

        assert outcome.cached is True
        assert outcome.classification["display_title"] == "A Square and a Cube"
        ai_service.classify.assert_awaited_once()

    async def test_generic_display_title_does_not_regress(
        self, classification_service, db_session, make_content, blob_store, make_pdf, ai_service
    ):
        await blob_store.upload("pdfs/w/1-x.pdf", make_pdf([["Some text"]]))
        content = await make_content(title="Gravitation", content_metadata={"storagePath": "pdfs/w/1-x.pdf"})
        ai_service.classify.return_value = {**CLASSIFICATION, "display_title": "PDF Document"}

        await classification_service.classify(content.id)

        assert (await ContentStore(db_session).get_content(content.id)).title == "Gravitation"

    async def test_in_flight_claim(self, classification_service, db_session, pdf_content, ai_service):
        await ContentStore(db_session).claim_trigger(pdf_content.id, TriggerKind.CLASSIFICATION)

        with pytest.raises(ContentBusy):
            await classification_service.classify(pdf_content.id)
        ai_service.classify.assert_not_called()

    async def test_ai_failure_releases_claim(self, classification_service, db_session, pdf_content, ai_service):
        ai_service.classify.side_effect = AIServiceError("timeout")

        with pytest.raises(AIServiceError):
            await classification_service.classify(pdf_content.id)

        assert await ContentStore(db_session).get_trigger(pdf_content.id, TriggerKind.CLASSIFICATION) is None

    async def test_missing_file(self, classification_service, db_session, make_content):
        content = await make_content(content_metadata={"storagePath": "pdfs/w/1-gone.pdf"})

        with pytest.raises(ContentNotFound):
            await classification_service.classify(content.id)
        assert await ContentStore(db_session).get_trigger(content.id, TriggerKind.CLASSIFICATION) is None

    async def test_no_storage_path(self, classification_service, make_content):
        content = await make_content()

        with pytest.raises(ContentNotFound):
            await classification_service.classify(content.id)

    async def test_only_pdf(self, classification_service, make_content):
        content = await make_content(type=ContentType.TEXT, extracted_text="Notes")

        with pytest.raises(InvalidInput):
            await classification_service.classify(content.id)

    async def test_unknown_content(self, classification_service):
        with pytest.raises(ContentNotFound):
            await classification_service.classify("missing")
