"""Domain errors raised by the document stores and service.

Each error carries the HTTP status it maps to and a message that is safe to
show to API clients. Internal details belong in the logs, not in ``message``.
"""

from fastapi import status


class DocumentError(Exception):
    """Base class for every error the document API turns into a response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(DocumentError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class UnsupportedMediaType(DocumentError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Only PDF files are allowed"


class PayloadTooLarge(DocumentError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "File size must be less than 10MB"


class NotFound(DocumentError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class DocumentNotFound(NotFound):
    """No metadata row exists for the requested id."""

    default_message = "Document not found"


class BlobNotFound(NotFound):
    """A metadata row exists but its blob is missing from storage."""

    default_message = "File not found on server"


class StorageUnavailable(DocumentError):
    """The database or the blob medium failed (I/O error, timeout)."""

    default_message = "Storage is unavailable"


class InternalError(DocumentError):
    pass
