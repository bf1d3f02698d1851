"""
NoteTaker Backend - Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for each failure class.
How:   Each exception carries a user-facing message and an optional context
       dict. Global exception handlers (registered in main.py) map them to
       HTTP status codes; services never deal with status codes.
Who:   Raised by services and storage backends; caught by global handlers.

Exception Hierarchy:
    NoteTakerError (base)
    ├── ValidationError        → 400 Bad Request (client can fix)
    ├── NotFoundError          → 404 Not Found
    ├── DependencyError        → 503 Service Unavailable (grammar checker)
    ├── FileStorageError       → 500 Internal Server Error (blob write failed)
    ├── DatabaseError          → 500 Internal Server Error
    └── StorageCleanupError    → never surfaced; logged by AttachmentManager
"""

from typing import Any, Dict, Optional


class NoteTakerError(Exception):
    """
    Base exception for all NoteTaker application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where a handler
                  explicitly includes it)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NoteTakerError):
    """
    Raised when client input fails validation.

    When:    Missing/blank title or content, malformed removal list,
             disallowed file type, oversized file, too many files.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "File type 'text/plain' is not allowed. Only images and PDFs are accepted.",
            "details": {"field": "attachments", "mime_type": "text/plain"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(NoteTakerError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown note id (including ids that are not valid UUIDs),
             unknown attachment id, or a blob missing from storage.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class DependencyError(NoteTakerError):
    """
    Raised when an external collaborator (the grammar checker) fails.

    When:    Network error, timeout, non-2xx response, malformed payload, or
             the circuit breaker is open.
    HTTP:    503 Service Unavailable

    Never retried automatically and never masked as an empty result.
    """

    def __init__(
        self,
        message: str = "The grammar checking service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class FileStorageError(NoteTakerError):
    """
    Raised when writing an attachment blob fails.

    When:    Disk full, permission denied, object store rejected the upload,
             upload retries exhausted.
    HTTP:    500 Internal Server Error (storage paths never reach the client)
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageCleanupError(NoteTakerError):
    """
    A blob delete failed during attachment removal or note deletion.

    Never raised past the AttachmentManager: it is logged and the enclosing
    note mutation still succeeds. Blobs left behind this way are orphans and
    have to be reconciled out-of-band.
    """

    def __init__(
        self,
        storage_key: str,
        message: str = "Failed to delete attachment blob",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["storage_key"] = storage_key
        super().__init__(message=message, context=ctx)
        self.storage_key = storage_key


class DatabaseError(NoteTakerError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic. SQL, constraint
    names and driver errors are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
