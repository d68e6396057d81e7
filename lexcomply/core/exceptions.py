"""
Domain exceptions. Routes translate these into HTTP responses.
"""


class LexComplyError(Exception):
    """Base class for all application errors."""


class UploadValidationError(LexComplyError):
    """Rejected upload: bad type, size, count or empty batch. Maps to 400."""


class AIServiceError(LexComplyError):
    """The LLM could not be reached or returned an unusable reply."""

    def __init__(self, message: str = "AI service failure"):
        super().__init__(message)


class ExtractionError(LexComplyError):
    """Text could not be extracted from a stored document."""


class UnsupportedFormatError(ExtractionError):
    """No extractor is registered for the document's media type."""


class StorageError(LexComplyError):
    """A stored file could not be written, read or removed."""
