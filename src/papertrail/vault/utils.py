"""
Utility functions for the papertrail vault.

This module contains the storage key convention and common helpers used
throughout the library.
"""

import time
from typing import Optional
from datetime import datetime, timezone

from loguru import logger


UPLOAD_ROOT = "user_uploads"
METADATA_ROOT = "users"
ADDITIONAL_SEGMENT = "additional"


def now_millis() -> int:
    """Current unix time in milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO-8601 UTC string with a ``Z`` suffix."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a timestamp produced by ``format_timestamp``."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def user_upload_prefix(user_id: str, document_type_id: Optional[str] = None) -> str:
    """
    Prefix under which all of a user's uploads live.

    Args:
        user_id: Owning user
        document_type_id: Optionally narrow to one document type

    Returns:
        str: Prefix ending in ``/``
    """
    if document_type_id:
        return f"{UPLOAD_ROOT}/{user_id}/{document_type_id}/"
    return f"{UPLOAD_ROOT}/{user_id}/"


def build_upload_key(
    user_id: str,
    document_type_id: str,
    extension: str,
    side: Optional[str] = None,
    is_additional_file: bool = False,
    timestamp_ms: Optional[int] = None,
) -> str:
    """
    Build the storage key for an uploaded file.

    The layout is part of the external contract; previously uploaded files
    are orphaned if it changes.

        user_uploads/{userId}/{documentTypeId}/{side}_{millis}.{ext}
        user_uploads/{userId}/{documentTypeId}/additional/{millis}.{ext}

    Args:
        user_id: Owning user
        document_type_id: Catalog id of the document
        extension: Lowercase file extension without the dot
        side: ``front`` or ``back`` for primary files
        is_additional_file: Place the file under ``additional/``
        timestamp_ms: Override the timestamp (defaults to now)

    Returns:
        str: Complete storage key
    """
    if timestamp_ms is None:
        timestamp_ms = now_millis()

    prefix = user_upload_prefix(user_id, document_type_id)
    if is_additional_file:
        return f"{prefix}{ADDITIONAL_SEGMENT}/{timestamp_ms}.{extension}"
    return f"{prefix}{side}_{timestamp_ms}.{extension}"


def progress_metadata_key(user_id: str) -> str:
    """Key of the JSON document holding a user's progress entries."""
    return f"{METADATA_ROOT}/{user_id}/documents/progress.json"


def profile_metadata_key(user_id: str) -> str:
    """Key of the JSON document holding a user's profile."""
    return f"{METADATA_ROOT}/{user_id}/profile.json"


def is_key_owned_by(key: str, user_id: str) -> bool:
    """
    Check that a storage key sits inside the user's upload namespace.

    Only the two upload layouts count: ``{side}_{millis}.{ext}`` directly
    under the type, or one file under ``additional/``. Keys with empty,
    ``.`` or ``..`` segments are never considered owned.
    """
    if not key or not user_id or "/" in user_id:
        return False

    parts = key.split("/")
    if any(part in ("", ".", "..") for part in parts):
        return False
    if parts[0] != UPLOAD_ROOT or parts[1] != user_id:
        return False

    if len(parts) == 4:
        return True
    return len(parts) == 5 and parts[3] == ADDITIONAL_SEGMENT


def timing_context(operation_name: str) -> 'TimingContext':
    """
    Create a timing context manager for performance measurement.

    Args:
        operation_name: Name of the operation being timed

    Returns:
        TimingContext: Context manager for timing
    """
    return TimingContext(operation_name)


class TimingContext:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.debug(f"Starting operation: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.perf_counter()
        duration = self.end_time - self.start_time

        if exc_type is None:
            logger.debug(f"Operation '{self.operation_name}' completed in {duration:.3f}s")
        else:
            logger.warning(f"Operation '{self.operation_name}' failed after {duration:.3f}s: {exc_val}")

    @property
    def duration(self) -> Optional[float]:
        """Get the duration of the operation."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        str: Formatted size (e.g., "1.5 MB")
    """
    if size_bytes == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.1f} {units[unit_index]}"
