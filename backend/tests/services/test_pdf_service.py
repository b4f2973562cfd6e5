"""
Tests for PDFService.

PDFs are generated in-process by the ``make_pdf`` fixture (conftest.py).
"""

import pytest

from app.core.exceptions import ExtractionFailure
from app.services.pdf_service import PDFDocument, PDFExtractionError, PDFService


@pytest.fixture
def pdf_service():
    return PDFService()


class TestPDFDocument:

    def test_info_title(self):
        assert PDFDocument(info={"Title": "  Maths  "}).info_title == "Maths"
        assert PDFDocument(info={"Title": "   "}).info_title is None
        assert PDFDocument().info_title is None

    def test_page_count(self):
        assert PDFDocument(page_texts=["a", "", "b"]).page_count == 3


class TestFirstPage:

    async def test_reads_only_first_page(self, pdf_service, make_pdf):
        data = make_pdf([["1 A SQUARE AND A CUBE", "Grade 8"], ["Second page body"]])

        doc = await pdf_service.extract_first_page(data, max_chars=2000)

        assert doc.page_count == 1
        assert "A SQUARE AND A CUBE" in doc.page_texts[0]
        assert "Second page" not in doc.page_texts[0]

    async def test_caps_text(self, pdf_service, make_pdf):
        data = make_pdf([["Photosynthesis in green plants"]])

        doc = await pdf_service.extract_first_page(data, max_chars=5)

        assert len(doc.page_texts[0]) <= 5

    async def test_reads_info_title(self, pdf_service, make_pdf):
        data = make_pdf([["Body"]], title="Light Reflection")

        doc = await pdf_service.extract_first_page(data, max_chars=100)

        assert doc.info_title == "Light Reflection"

    async def test_no_info(self, pdf_service, make_pdf):
        doc = await pdf_service.extract_first_page(make_pdf([["Body"]]), max_chars=100)
        assert doc.info_title is None


class TestDocument:

    async def test_reads_every_page(self, pdf_service, make_pdf):
        data = make_pdf([["Page one text"], ["Page two text"], ["Page three text"]])

        doc = await pdf_service.extract_document(data)

        assert doc.page_count == 3
        assert "Page two text" in doc.page_texts[1]

    async def test_keeps_empty_pages(self, pdf_service, make_pdf):
        data = make_pdf([["Page one text"], [], ["Page three text"]])

        doc = await pdf_service.extract_document(data)

        assert doc.page_count == 3
        assert doc.page_texts[1].strip() == ""

    async def test_no_text_raises(self, pdf_service, make_pdf):
        with pytest.raises(PDFExtractionError):
            await pdf_service.extract_document(make_pdf([[]]))


class TestErrors:

    @pytest.mark.parametrize("data", [b"", b"this is not a pdf"])
    def test_unreadable_bytes(self, pdf_service, data):
        with pytest.raises(PDFExtractionError):
            pdf_service.read_document(data)

    def test_error_is_extraction_failure(self, pdf_service):
        with pytest.raises(ExtractionFailure) as exc_info:
            pdf_service.read_first_page(b"", max_chars=10)
        assert exc_info.value.status_code == 422
