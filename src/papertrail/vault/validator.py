"""
Upload validation.

``validate_upload`` is a pure function over an ``UploadRequest``: it never
touches storage or the network, so every rejection path can be exercised
in isolation. Checks run in a fixed order and the first failure wins.
"""

import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .catalog import require_document_type
from .exceptions import UploadValidationError
from .utils import format_file_size


MAX_UPLOAD_BYTES = 5 * 1024 * 1024

UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"
INVALID_SIDE = "INVALID_SIDE"
MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
FILE_TOO_LARGE = "FILE_TOO_LARGE"


class Side(Enum):
    """Role a file plays within a document type."""
    FRONT = "front"
    BACK = "back"
    ADDITIONAL = "additional"


# Accepted file type spellings mapped to the extension used in storage keys
FILE_TYPE_EXTENSIONS = {
    "pdf": "pdf",
    "jpg": "jpg",
    "jpeg": "jpeg",
    "png": "png",
    "application/pdf": "pdf",
    "image/jpeg": "jpeg",
    "image/jpg": "jpg",
    "image/png": "png",
}

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}


@dataclass
class UploadRequest:
    """One upload call. Exists only for the duration of the call."""
    user_id: str
    document_type_id: str
    payload: str
    mime_or_extension: str
    side: Optional[str] = None
    is_additional_file: bool = False
    file_name: Optional[str] = None


@dataclass(frozen=True)
class ValidatedUpload:
    """An upload that passed every check, with its payload decoded."""
    request: UploadRequest
    data: bytes
    extension: str
    content_type: str
    side: Side

    @property
    def is_additional_file(self) -> bool:
        return self.side is Side.ADDITIONAL

    @property
    def size(self) -> int:
        return len(self.data)


def normalize_file_type(mime_or_extension: Optional[str]) -> Optional[str]:
    """
    Map a file type given as extension or MIME type to a storage extension.

    Returns:
        The canonical extension, or ``None`` when the type is unsupported
    """
    if not mime_or_extension or not isinstance(mime_or_extension, str):
        return None
    normalized = mime_or_extension.strip().lower()
    if normalized.startswith("."):
        normalized = normalized[1:]
    return FILE_TYPE_EXTENSIONS.get(normalized)


def resolve_side(side: Optional[str], is_additional_file: bool, requires_both_sides: bool) -> Side:
    """
    Decide which role the file fills.

    Raises:
        UploadValidationError: ``INVALID_SIDE`` when a two-sided document is
            uploaded without ``front`` or ``back``
    """
    normalized = side.strip().lower() if isinstance(side, str) else None

    if is_additional_file or normalized == Side.ADDITIONAL.value:
        return Side.ADDITIONAL

    if normalized in (Side.FRONT.value, Side.BACK.value):
        return Side(normalized)

    if requires_both_sides:
        raise UploadValidationError(
            "Invalid side specified for document that requires both sides",
            field="side",
            value=side,
            code=INVALID_SIDE,
        )

    # single-sided documents file everything as the front
    return Side.FRONT


def decode_payload(payload: Optional[str]) -> bytes:
    """
    Decode the base64 transport encoding.

    Raises:
        UploadValidationError: ``MALFORMED_PAYLOAD`` on missing, empty or
            undecodable data
    """
    if not payload or not isinstance(payload, str):
        raise UploadValidationError("Missing or invalid file data", field="fileDataBase64", code=MALFORMED_PAYLOAD)

    compact = "".join(payload.split())
    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise UploadValidationError("Malformed file data", field="fileDataBase64", code=MALFORMED_PAYLOAD)

    if not data:
        raise UploadValidationError("Missing or invalid file data", field="fileDataBase64", code=MALFORMED_PAYLOAD)
    return data


def validate_upload(request: UploadRequest, max_bytes: int = MAX_UPLOAD_BYTES) -> ValidatedUpload:
    """
    Validate an upload request.

    Checks, in order: document type, file type, side, payload encoding,
    decoded size.

    Args:
        request: The upload to check
        max_bytes: Largest accepted decoded payload

    Returns:
        ValidatedUpload with the decoded bytes

    Raises:
        UploadValidationError: with ``code`` set to the first failing check
    """
    definition = require_document_type(request.document_type_id)

    extension = normalize_file_type(request.mime_or_extension)
    if extension is None:
        raise UploadValidationError(
            "Invalid or unsupported file type",
            field="fileType",
            value=request.mime_or_extension,
            code=UNSUPPORTED_FILE_TYPE,
        )

    side = resolve_side(request.side, request.is_additional_file, definition.requires_both_sides)

    data = decode_payload(request.payload)

    if len(data) > max_bytes:
        raise UploadValidationError(
            f"File too large (max {format_file_size(max_bytes)})",
            field="fileDataBase64",
            details={"size": len(data), "max_bytes": max_bytes},
            code=FILE_TOO_LARGE,
        )

    return ValidatedUpload(
        request=request,
        data=data,
        extension=extension,
        content_type=CONTENT_TYPES[extension],
        side=side,
    )
