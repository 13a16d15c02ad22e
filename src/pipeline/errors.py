"""Exception taxonomy for batch OCR processing.

Validation and conversion errors are reported per file, recognition
errors per page. Anything else raised while a file is processed is
treated as an unhandled error at the file boundary.
"""


class OCRServiceError(Exception):
    """Base class for all expected processing failures."""


class ValidationError(OCRServiceError):
    """An upload was rejected before processing (extension or size)."""


class ConversionError(OCRServiceError):
    """A document could not be turned into page images."""


class RecognitionError(OCRServiceError):
    """The recognition backend failed for a single page."""


class RequestFailedError(RecognitionError):
    """The backend answered with a non-success status."""

    def __init__(self, message: str, status_code: int, body: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RecognitionTimeoutError(RecognitionError):
    """The backend did not answer within the per-page timeout."""


class EmptyResultError(RecognitionError):
    """The backend answered but returned no text."""


class BackendUnreachableError(RecognitionError):
    """The backend could not be reached at all."""


class OperationCancelledError(OCRServiceError):
    """An outstanding call was aborted because the batch was cancelled."""
