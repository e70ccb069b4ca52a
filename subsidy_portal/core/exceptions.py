"""Custom exception hierarchy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with. ``to_payload`` renders the error for collaborators.
"""

from typing import Any, Dict, Optional

BYTES_PER_MB = 1024 * 1024


def format_megabytes(num_bytes: int) -> str:
    """Render a byte count as a human-readable MB figure."""
    megabytes = num_bytes / BYTES_PER_MB
    if megabytes == int(megabytes):
        return f"{int(megabytes)}MB"
    return f"{megabytes:.1f}MB"


class AppError(Exception):
    """Base exception for application errors."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def to_payload(self) -> Dict[str, Any]:
        """Serialize the error for an API response."""
        return {"code": self.code, "detail": self.message}


class APIClientError(AppError):
    """Raised when an external API call fails."""

    code = "API_CLIENT_ERROR"
    http_status = 502


class DatabaseError(AppError):
    """Raised when a database operation fails."""

    code = "DATABASE_ERROR"


class ValidationError(AppError):
    """Raised when input validation fails."""

    code = "VALIDATION_ERROR"
    http_status = 400


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIGURATION_ERROR"


class DocumentNotFoundError(AppError):
    """Raised when a document is not found."""

    code = "DOCUMENT_NOT_FOUND"
    http_status = 404


class InvalidStatusTransition(AppError):
    """Raised when a document status change is not allowed."""

    code = "INVALID_STATUS_TRANSITION"
    http_status = 409


class PayloadTooLarge(ValidationError):
    """A file exceeds an admission ceiling. Never retried automatically."""

    code = "PAYLOAD_TOO_LARGE"
    http_status = 413

    def __init__(self, limit_bytes: int, actual_bytes: int, stage: str = "upload"):
        self.limit_bytes = limit_bytes
        self.actual_bytes = actual_bytes
        self.stage = stage
        super().__init__(
            f"File is {format_megabytes(actual_bytes)} ({actual_bytes} bytes); "
            f"the {stage} limit is {format_megabytes(limit_bytes)} ({limit_bytes} bytes). "
            f"Please supply a smaller file."
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload.update(
            {
                "stage": self.stage,
                "limit_bytes": self.limit_bytes,
                "limit_mb": format_megabytes(self.limit_bytes),
                "actual_bytes": self.actual_bytes,
                "actual_mb": format_megabytes(self.actual_bytes),
            }
        )
        return payload


class StorageUnavailable(AppError):
    """Writing, reading or deleting a blob failed."""

    code = "STORAGE_UNAVAILABLE"
    http_status = 503

    def __init__(self, message: str, path: Optional[str] = None, original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.path = path


class MetadataPersistFailed(DatabaseError):
    """The metadata row could not be written after a successful blob write."""

    code = "METADATA_PERSIST_FAILED"


class TemplateNotFound(ConfigurationError):
    """No active prompt template exists for a subsidy/document pair."""

    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, subsidy_type: str, document_type: str):
        self.subsidy_type = subsidy_type
        self.document_type = document_type
        super().__init__(
            f"No active prompt template for subsidy_type={subsidy_type!r}, "
            f"document_type={document_type!r}"
        )


class PromptTemplateNotFound(AppError):
    """No prompt template exists with the given id."""

    code = "PROMPT_TEMPLATE_NOT_FOUND"
    http_status = 404

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Prompt template {template_id!r} not found")


class InferenceUnavailable(APIClientError):
    """The external model call failed or timed out. Retry is user-initiated."""

    code = "INFERENCE_UNAVAILABLE"


class MalformedInferenceResponse(APIClientError):
    """The model answer could not be structured (strict parsing mode only)."""

    code = "MALFORMED_INFERENCE_RESPONSE"

    def __init__(self, message: str, raw_response: str, original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.raw_response = raw_response
