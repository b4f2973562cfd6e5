"""
PDF text extraction using pypdf.

Two entry points with different latency budgets:

- ``extract_first_page``: used synchronously by the ingestion gateway; reads
  only page one and caps the returned text.
- ``extract_document``: used by the background processor; reads every page,
  keeping empty strings for pages that fail so page numbering is preserved.

pypdf is synchronous and CPU-bound, so the async wrappers run it in a worker
thread.
"""

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from app.core.exceptions import ExtractionFailure

logger = logging.getLogger(__name__)


class PDFExtractionError(ExtractionFailure):
    """Raised when a PDF cannot be opened or contains no extractable text."""
    pass


@dataclass
class PDFDocument:
    """Extracted text plus upstream document info."""

    page_texts: list[str] = field(default_factory=list)
    info: dict[str, Any] = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return len(self.page_texts)

    @property
    def info_title(self) -> Optional[str]:
        title = self.info.get("Title")
        return title.strip() if isinstance(title, str) and title.strip() else None


class PDFService:
    """
    Wrapper around pypdf's PdfReader.

    Example:
        >>> service = PDFService()
        >>> doc = await service.extract_document(data)
        >>> print(doc.page_count, doc.info_title)
    """

    def _open(self, data: bytes) -> PdfReader:
        if not data:
            raise PDFExtractionError("No PDF bytes provided")
        try:
            return PdfReader(io.BytesIO(data))
        except (PdfReadError, ValueError, OSError) as e:
            raise PDFExtractionError(f"Could not open PDF: {e}") from e

    @staticmethod
    def _read_info(reader: PdfReader) -> dict[str, Any]:
        """Upstream document metadata as plain strings (e.g. {"Title": ...})."""
        try:
            metadata = reader.metadata
        except PdfReadError as e:
            logger.warning(f"Unreadable PDF metadata: {e}")
            return {}
        if not metadata:
            return {}

        info = {}
        for key, value in metadata.items():
            if value is None:
                continue
            info[str(key).lstrip("/")] = str(value)
        return info

    @staticmethod
    def _page_text(reader: PdfReader, index: int) -> str:
        try:
            return reader.pages[index].extract_text() or ""
        except Exception as e:
            # pypdf raises a wide range of errors on malformed content streams
            logger.warning(f"Failed to extract text from page {index + 1}: {e}")
            return ""

    def read_first_page(self, data: bytes, max_chars: int) -> PDFDocument:
        reader = self._open(data)
        if len(reader.pages) == 0:
            raise PDFExtractionError("PDF has no pages")
        text = self._page_text(reader, 0)[:max_chars]
        return PDFDocument(page_texts=[text], info=self._read_info(reader))

    def read_document(self, data: bytes) -> PDFDocument:
        reader = self._open(data)
        page_texts = [self._page_text(reader, i) for i in range(len(reader.pages))]
        if not any(text.strip() for text in page_texts):
            raise PDFExtractionError("PDF contains no extractable text")
        return PDFDocument(page_texts=page_texts, info=self._read_info(reader))

    async def extract_first_page(self, data: bytes, max_chars: int) -> PDFDocument:
        """
        Extract page one only, capped at ``max_chars``.

        Raises:
            PDFExtractionError: If the PDF cannot be opened
        """
        return await asyncio.to_thread(self.read_first_page, data, max_chars)

    async def extract_document(self, data: bytes) -> PDFDocument:
        """
        Extract every page.

        Raises:
            PDFExtractionError: If the PDF cannot be opened or has no text
        """
        return await asyncio.to_thread(self.read_document, data)


def get_pdf_service() -> PDFService:
    """Get PDF service instance."""
    return PDFService()
