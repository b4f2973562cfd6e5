"""
Application exception taxonomy.

Every error the API can surface derives from LearnChatError, which carries
a machine-readable code and the HTTP status the exception handler in
app.main renders it with:

    {"error": {"code": "invalid_input", "message": "..."}}

Background work never lets these escape; the processor converts them into
status transitions on the Content record.
"""

from typing import Optional


class LearnChatError(Exception):
    """Base class for application errors."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidInput(LearnChatError):
    """A submission is missing a field its type requires."""

    code = "invalid_input"
    status_code = 400


class ContentNotFound(LearnChatError):
    code = "not_found"
    status_code = 404


class ExtractionFailure(LearnChatError):
    """No bytes, text or transcript could be obtained for a content item."""

    code = "extraction_failed"
    status_code = 422


class RefinementFailure(LearnChatError):
    """An AI title, summary or classification call failed."""

    code = "refinement_failed"
    status_code = 502


class PersistenceFailure(LearnChatError):
    """A write to the record store failed."""

    code = "persistence_failed"
    status_code = 500


class InvalidStatusTransition(LearnChatError):
    code = "invalid_status_transition"
    status_code = 409


class ContentBusy(LearnChatError):
    """Another worker holds the processing lease for this content id."""

    code = "content_busy"
    status_code = 409


class TransientProcessingError(LearnChatError):
    """A retryable failure (broker hiccup, lock backend unavailable)."""

    code = "transient_processing_error"
    status_code = 503
