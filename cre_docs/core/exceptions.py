"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class APIClientError(AppError):
    """Raised when an external API call fails."""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.status_code = status_code


class AuthenticationError(APIClientError):
    """Raised when the upstream API rejects our credentials (401/403)."""
    pass


class RateLimitError(APIClientError):
    """Raised when the upstream API keeps answering 429."""
    pass


class UpstreamServerError(APIClientError):
    """Raised when the upstream API keeps answering 5xx."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ParseError(AppError):
    """Raised when no JSON object can be recovered from model output."""
    def __init__(self, message: str, raw_text: str = "", original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.raw_text = raw_text


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class InvalidClassificationResponse(ValidationError):
    """Model answered without a usable type/confidence/reasoning triple."""
    pass


class InvalidExtractionResponse(ValidationError):
    """Model answered without documentType or data."""
    pass


class ExtractionPolicyError(AppError):
    """Base class for inputs the extraction service refuses to process."""
    pass


class DocumentTooLargeForNativeProcessing(ExtractionPolicyError):
    """PDF exceeds the native-processing page limit."""
    def __init__(self, estimated_pages: int, page_limit: int):
        super().__init__(
            f"PDF has {estimated_pages} estimated pages (>{page_limit}). "
            f"Please convert the PDF to page images on the client side and "
            f"resubmit them as a multi-page bundle."
        )
        self.estimated_pages = estimated_pages
        self.page_limit = page_limit


class UnsupportedFileType(ExtractionPolicyError):
    """File MIME type has no processing strategy."""
    def __init__(self, mime_type: str):
        super().__init__(
            f"Unsupported file type: {mime_type}. "
            f"Supported types: PDF, JPEG, PNG, GIF, WebP, or multi-page JSON"
        )
        self.mime_type = mime_type


class InvalidMultiPageBundle(ExtractionPolicyError):
    """Multi-page JSON bundle could not be read."""
    pass


class StorageError(AppError):
    """Raised when an object storage operation fails."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class NotFoundError(AppError):
    """Raised when a requested record does not exist."""
    pass


class DocumentNotFoundError(NotFoundError):
    """Raised when a document is not found."""
    pass


class ConcurrentModificationError(AppError):
    """Raised when a record changed since the caller last read it."""
    pass


class FineTuningError(AppError):
    """Base exception for fine-tuning coordination errors."""
    pass


class InvalidStateTransition(FineTuningError):
    """Raised when a fine-tuning job would move backwards."""
    pass


class ModelDeploymentError(FineTuningError):
    """Raised when a job cannot be promoted to a model version."""
    pass


class JobNotFoundError(NotFoundError):
    """Raised when a fine-tuning job or model version is not found."""
    pass
