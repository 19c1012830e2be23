"""
Custom exceptions for the papertrail vault.

Every exception carries a wire ``code`` so the HTTP layer can report the
failure to the caller without inspecting the exception type.
"""

from typing import Optional, Dict, Any


class VaultError(Exception):
    """Base exception for all vault related errors."""

    code = "INTERNAL"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} (Details: {details_str})"
        return self.message


class ConfigurationError(VaultError):
    """Raised when there are configuration-related errors."""

    code = "FAILED_PRECONDITION"

    def __init__(self, message: str, config_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.config_key = config_key
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details)


class AuthenticationError(VaultError):
    """Raised when no verified identity is attached to a call."""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "User not authenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class AuthorizationError(VaultError):
    """Raised when an authenticated user reaches outside their own namespace."""

    code = "PERMISSION_DENIED"

    def __init__(self, message: str, user_id: Optional[str] = None, key: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.user_id = user_id
        self.key = key
        details = details or {}
        if user_id:
            details["user_id"] = user_id
        if key:
            details["key"] = key
        super().__init__(message, details)


class ValidationError(VaultError):
    """Raised when request data validation fails. Safe to retry after fixing input."""

    code = "INVALID_ARGUMENT"

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None,
                 details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details, code=code)


class UploadValidationError(ValidationError):
    """Raised by the upload validator; ``code`` names the specific rejection."""
    pass


class ProfileValidationError(ValidationError):
    """Raised when profile fields are missing or malformed."""
    pass


class NotFoundError(VaultError):
    """Raised when a requested document or key does not exist."""

    code = "NOT_FOUND"


class StorageError(VaultError):
    """Base exception for object storage failures. Nothing was committed."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, operation: Optional[str] = None, bucket: Optional[str] = None,
                 key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.bucket = bucket
        self.key = key
        details = details or {}
        if operation:
            details["operation"] = operation
        if bucket:
            details["bucket"] = bucket
        if key:
            details["key"] = key
        super().__init__(message, details)


class StorageWriteError(StorageError):
    """Raised when writing an uploaded object fails."""

    code = "STORAGE_WRITE_FAILED"


class S3OperationError(StorageError):
    """Base exception for S3 operation errors."""
    pass


class S3ConnectionError(S3OperationError):
    """Raised when unable to connect to S3."""
    pass


class S3PermissionError(S3OperationError):
    """Raised when S3 operation fails due to insufficient permissions."""
    pass


class S3ObjectNotFoundError(S3OperationError):
    """Raised when trying to access a non-existent S3 object."""

    code = "NOT_FOUND"


class S3BucketNotFoundError(S3OperationError):
    """Raised when trying to access a non-existent S3 bucket."""
    pass


class MetadataError(VaultError):
    """
    Raised when the object was stored but the progress or profile write failed.

    Do not re-run the whole upload: that writes a second object under a new
    timestamped key. Retry only the metadata patch against ``storage_key``.
    """

    code = "METADATA_WRITE_FAILED"

    def __init__(self, message: str, user_id: Optional[str] = None, document_type_id: Optional[str] = None,
                 storage_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.user_id = user_id
        self.document_type_id = document_type_id
        self.storage_key = storage_key
        details = details or {}
        if document_type_id:
            details["document_type_id"] = document_type_id
        if storage_key:
            details["storage_key"] = storage_key
        super().__init__(message, details)


class CacheError(VaultError):
    """Base exception for caching-related errors."""
    pass


class CacheConnectionError(CacheError):
    """Raised when unable to connect to cache backend (e.g., Redis)."""
    pass
