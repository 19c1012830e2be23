"""
Papertrail Vault - S3-backed document uploads with per-user progress tracking.

Usage:
    from papertrail.vault import create_vault, Identity, UploadRequest

    vault = create_vault()
    identity = Identity(user_id="user-123")
    vault.submit_upload(identity, UploadRequest(
        user_id="user-123",
        document_type_id="drivers_license",
        payload=base64_text,
        mime_or_extension="image/jpeg",
        side="front",
    ))
    progress = vault.get_document_progress(identity)
"""

from .vault import DocumentVault, create_vault
from .auth import Identity, JwtIdentityVerifier, create_identity_token
from .catalog import DOCUMENT_TYPES, DocumentTypeDefinition, get_document_type
from .validator import Side, UploadRequest, ValidatedUpload, validate_upload
from .progress import (
    DocumentProgressEntry,
    ProgressStatus,
    ProgressStore,
    RequestType,
    ReplacementPatch,
    StatusOnly,
    UploadPatch,
    apply_patch,
)
from .profile import ProfileStore, UserProfile, validate_profile_fields
from .object_store import ObjectStore, S3ObjectStore, MemoryObjectStore
from .feed import ProgressFeed
from .cache import VaultCache
from .utils import build_upload_key, timing_context

from .config import VaultConfig, get_config, load_config, set_config
from .exceptions import (
    VaultError,
    AuthenticationError,
    AuthorizationError,
    ValidationError,
    UploadValidationError,
    ProfileValidationError,
    NotFoundError,
    StorageError,
    StorageWriteError,
    MetadataError,
    CacheError,
    ConfigurationError,
)

__all__ = [
    # Main API Classes
    "DocumentVault",
    "ObjectStore",
    "S3ObjectStore",
    "MemoryObjectStore",
    "ProgressStore",
    "ProfileStore",
    "ProgressFeed",
    "VaultCache",

    # Factory Functions
    "create_vault",

    # Identity
    "Identity",
    "JwtIdentityVerifier",
    "create_identity_token",

    # Data Model
    "DOCUMENT_TYPES",
    "DocumentTypeDefinition",
    "get_document_type",
    "Side",
    "UploadRequest",
    "ValidatedUpload",
    "validate_upload",
    "DocumentProgressEntry",
    "ProgressStatus",
    "RequestType",
    "UploadPatch",
    "ReplacementPatch",
    "StatusOnly",
    "apply_patch",
    "UserProfile",
    "validate_profile_fields",

    # Configuration
    "VaultConfig",
    "get_config",
    "load_config",
    "set_config",

    # Utilities
    "build_upload_key",
    "timing_context",

    # Exceptions
    "VaultError",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "UploadValidationError",
    "ProfileValidationError",
    "NotFoundError",
    "StorageError",
    "StorageWriteError",
    "MetadataError",
    "CacheError",
    "ConfigurationError",
]
