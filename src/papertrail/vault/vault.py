"""
High-level DocumentVault API for the papertrail vault.

This module provides the DocumentVault class, the single entry point for
uploads, replacement requests, progress reads, profile updates and signed
URL retrieval. Every operation takes the verified caller ``Identity`` and
only ever touches that user's data.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from loguru import logger

from .auth import Identity, require_identity
from .cache import VaultCache
from .catalog import require_document_type
from .config import VaultConfig, get_config
from .exceptions import (
    AuthorizationError,
    MetadataError,
    NotFoundError,
    StorageWriteError,
    UploadValidationError,
)
from .object_store import ObjectStore, S3ObjectStore, MemoryObjectStore
from .profile import ProfileStore, MemoryProfileBackend, S3ProfileBackend, validate_profile_fields
from .progress import (
    DocumentProgressEntry,
    MemoryProgressBackend,
    ProgressStore,
    ReplacementPatch,
    S3ProgressBackend,
    UploadPatch,
)
from .utils import (
    ADDITIONAL_SEGMENT,
    build_upload_key,
    format_timestamp,
    is_key_owned_by,
    timing_context,
    user_upload_prefix,
    utc_now,
)
from .validator import INVALID_SIDE, Side, UploadRequest, validate_upload


class DocumentVault:
    """
    High-level API for per-user document storage and progress tracking.

    Uploads are two separate writes, the object and then its progress
    entry, with no lock spanning both. When the second write fails the
    caller gets ``METADATA_WRITE_FAILED`` with the written key and can
    finish the upload with ``retry_progress_patch``.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        progress_store: Optional[ProgressStore] = None,
        profile_store: Optional[ProfileStore] = None,
        cache: Optional[VaultCache] = None,
        config: Optional[VaultConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize DocumentVault.

        Args:
            object_store: Where uploaded files go
            progress_store: Progress records (defaults to in-memory)
            profile_store: Profiles (defaults to in-memory)
            cache: Snapshot cache (defaults to one built from config)
            config: Vault configuration (defaults to the global config)
            clock: Source of timestamps for keys and records
        """
        self.config = config or get_config()
        self.clock = clock
        self.object_store = object_store
        self.progress_store = progress_store or ProgressStore(clock=clock)
        self.profile_store = profile_store or ProfileStore(clock=clock)
        self.cache = cache or VaultCache(config=self.config)

        logger.info(f"DocumentVault initialized with {object_store.__class__.__name__}")

    # ==========================================
    # Uploads and replacement requests
    # ==========================================

    def submit_upload(self, identity: Optional[Identity], request: UploadRequest) -> Dict[str, Any]:
        """
        Validate, store and record one uploaded file.

        Args:
            identity: Verified caller
            request: The upload; ``user_id`` must be the caller's

        Returns:
            Dict with ``success``, ``storageKey``, ``documentTypeId``, ``side``

        Raises:
            AuthenticationError: No identity; nothing is written
            UploadValidationError: Rejected input; nothing is written
            StorageWriteError: Object write failed; progress untouched
            MetadataError: Object written, progress not updated

        Example:
            result = vault.submit_upload(identity, UploadRequest(
                user_id=identity.user_id,
                document_type_id="passport",
                payload=base64_text,
                mime_or_extension="pdf",
            ))
            print(result["storageKey"])
        """
        identity = require_identity(identity)
        if request.user_id != identity.user_id:
            raise AuthorizationError("Cannot upload on behalf of another user", user_id=identity.user_id)

        with timing_context(f"submit_upload(user={identity.user_id}, type={request.document_type_id})"):
            upload = validate_upload(request, max_bytes=self.config.max_upload_bytes)

            key = build_upload_key(
                identity.user_id,
                request.document_type_id,
                upload.extension,
                side=upload.side.value,
                is_additional_file=upload.is_additional_file,
                timestamp_ms=int(self.clock().timestamp() * 1000),
            )

            try:
                self.object_store.put(key, upload.data, upload.content_type)
            except StorageWriteError:
                raise
            except Exception as e:
                logger.error(f"Failed to store upload {key}: {str(e)}")
                raise StorageWriteError(f"Failed to upload file: {str(e)}", operation="put", key=key)

            self._record_progress(identity.user_id, request.document_type_id, UploadPatch(upload.side, key), key)

            logger.info(
                f"Stored {upload.side.value} file for user {identity.user_id}, "
                f"{request.document_type_id}: {key} ({upload.size} bytes)"
            )
            return {
                "success": True,
                "storageKey": key,
                "documentTypeId": request.document_type_id,
                "side": upload.side.value,
            }

    def request_replacement(self, identity: Optional[Identity], document_type_id: str) -> Dict[str, Any]:
        """
        Record that the user asked for a replacement document.

        Idempotent: repeating it only refreshes ``updatedAt``. Existing keys
        are kept.

        Returns:
            Dict with ``success`` and ``estimatedTime``
        """
        identity = require_identity(identity)
        definition = require_document_type(document_type_id)

        patch = ReplacementPatch(definition.estimated_turnaround_label)
        self._record_progress(identity.user_id, document_type_id, patch)

        logger.info(f"Replacement requested by user {identity.user_id} for {document_type_id}")
        return {"success": True, "estimatedTime": definition.estimated_turnaround_label}

    def retry_progress_patch(self, identity: Optional[Identity], document_type_id: str, side: str,
                             storage_key: str) -> Dict[str, Any]:
        """
        Finish an upload whose progress write failed.

        Re-applies the upload patch for an object that is already stored,
        without writing the object again.

        Raises:
            AuthorizationError: The key is not the caller's upload of this type
            UploadValidationError: The key was stored for a different side
            NotFoundError: Nothing is stored at ``storage_key``
            MetadataError: The progress write failed again
        """
        identity = require_identity(identity)
        require_document_type(document_type_id)
        role = self._parse_side(side)

        type_prefix = user_upload_prefix(identity.user_id, document_type_id)
        if not is_key_owned_by(storage_key, identity.user_id) or not storage_key.startswith(type_prefix):
            raise AuthorizationError("Key is not an upload of this document type", user_id=identity.user_id,
                                     key=storage_key)

        file_part = storage_key[len(type_prefix):]
        if role is Side.ADDITIONAL:
            matches_role = file_part.startswith(f"{ADDITIONAL_SEGMENT}/")
        else:
            matches_role = file_part.startswith(f"{role.value}_")
        if not matches_role:
            raise UploadValidationError("Key was not uploaded as this side", field="side", value=side,
                                        code=INVALID_SIDE)

        if not self.object_store.exists(storage_key):
            raise NotFoundError(f"No stored object at {storage_key}", details={"storage_key": storage_key})

        self._record_progress(identity.user_id, document_type_id, UploadPatch(role, storage_key), storage_key)
        logger.info(f"Re-applied progress patch for user {identity.user_id}, {document_type_id}: {storage_key}")
        return {"success": True, "storageKey": storage_key, "documentTypeId": document_type_id, "side": role.value}

    def _record_progress(self, user_id: str, document_type_id: str, patch, storage_key: Optional[str] = None) -> None:
        try:
            self.progress_store.upsert_progress(user_id, document_type_id, patch)
        except Exception as e:
            logger.error(f"Progress write failed for user {user_id}, {document_type_id}: {str(e)}")
            raise MetadataError(
                "Failed to update document progress",
                user_id=user_id,
                document_type_id=document_type_id,
                storage_key=storage_key,
            )
        finally:
            self.cache.invalidate_user(user_id)

    # ==========================================
    # Reads
    # ==========================================

    def get_document_progress(self, identity: Optional[Identity]) -> Dict[str, Dict[str, Any]]:
        """
        Return the caller's progress entries in wire form, keyed by type id.

        Document types the user never touched are absent.
        """
        identity = require_identity(identity)

        cached = self.cache.get_progress(identity.user_id)
        if cached is not None:
            return cached

        generation = self.cache.generation(identity.user_id)
        progress = {
            type_id: entry.to_dict()
            for type_id, entry in self.progress_store.get_progress(identity.user_id).items()
        }
        self.cache.set_progress(identity.user_id, progress, generation=generation)
        return progress

    def get_profile(self, identity: Optional[Identity]) -> Optional[Dict[str, Any]]:
        """Return the caller's profile in wire form, or None."""
        identity = require_identity(identity)

        cached = self.cache.get_profile(identity.user_id)
        if cached is not None:
            return cached

        generation = self.cache.generation(identity.user_id)
        profile = self.profile_store.get_profile(identity.user_id)
        if profile is None:
            return None
        data = profile.to_dict()
        self.cache.set_profile(identity.user_id, data, generation=generation)
        return data

    def subscribe_to_progress(self, identity: Optional[Identity], timeout: Optional[float] = None) -> Iterator[Dict[str, Dict[str, Any]]]:
        """
        Follow the caller's progress: current snapshot first, then one per change.

        Args:
            identity: Verified caller
            timeout: Stop after this many seconds without a change
        """
        identity = require_identity(identity)
        stream = self.progress_store.subscribe_to_progress(identity.user_id, timeout=timeout)
        return self._wire_snapshots(stream)

    @staticmethod
    def _wire_snapshots(stream: Iterator[Dict[str, DocumentProgressEntry]]) -> Iterator[Dict[str, Dict[str, Any]]]:
        try:
            for snapshot in stream:
                yield {type_id: entry.to_dict() for type_id, entry in snapshot.items()}
        finally:
            stream.close()

    # ==========================================
    # Signed URLs
    # ==========================================

    def sign_read_url(self, identity: Optional[Identity], key: str) -> Dict[str, Any]:
        """
        Sign a short-lived read URL for one of the caller's objects.

        Returns:
            Dict with ``url`` and ``expiresIn`` (seconds)

        Raises:
            AuthorizationError: The key is outside the caller's namespace
        """
        identity = require_identity(identity)
        ttl = self.config.signed_url_ttl_seconds
        url = self.object_store.sign_read_url(key, identity.user_id, ttl_seconds=ttl)
        return {"url": url, "expiresIn": ttl}

    def get_document_url(self, identity: Optional[Identity], document_type_id: str,
                         side: str = Side.FRONT.value) -> Dict[str, Any]:
        """
        Sign a read URL for the current file of a document type.

        ``side`` is ``front``, ``back`` or ``additional``; for additional
        files the most recently added one is signed.

        Returns:
            Dict with ``url``, ``expiresIn`` and ``storageKey``

        Raises:
            NotFoundError: No file is recorded for that role
        """
        identity = require_identity(identity)
        require_document_type(document_type_id)
        role = self._parse_side(side)

        entry = self.progress_store.get_entry(identity.user_id, document_type_id)
        if role is Side.FRONT:
            key = entry.front_key
        elif role is Side.BACK:
            key = entry.back_key
        else:
            key = entry.additional_keys[-1] if entry.additional_keys else None

        if key is None:
            raise NotFoundError(
                f"No {role.value} file uploaded for {document_type_id}",
                details={"document_type_id": document_type_id, "side": role.value},
            )

        signed = self.sign_read_url(identity, key)
        signed["storageKey"] = key
        return signed

    @staticmethod
    def _parse_side(side: Optional[str]) -> Side:
        try:
            return Side((side or "").strip().lower())
        except ValueError:
            raise UploadValidationError("Invalid side specified", field="side", value=side, code=INVALID_SIDE)

    # ==========================================
    # Profile and account data
    # ==========================================

    def update_profile(self, identity: Optional[Identity], fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and merge profile fields.

        Returns:
            Dict with ``success`` and the stored ``profile``

        Raises:
            ProfileValidationError: ``INVALID_ARGUMENT`` naming the offending field
            MetadataError: The profile write failed
        """
        identity = require_identity(identity)
        normalized = validate_profile_fields(fields)

        try:
            profile = self.profile_store.merge_profile(identity.user_id, normalized)
        except Exception as e:
            logger.error(f"Profile write failed for user {identity.user_id}: {str(e)}")
            raise MetadataError("Failed to update profile", user_id=identity.user_id)
        finally:
            self.cache.invalidate_user(identity.user_id)

        return {"success": True, "profile": profile.to_dict()}

    def clear_all_data(self, identity: Optional[Identity]) -> Dict[str, Any]:
        """
        Delete the caller's progress record, profile and cached snapshots.

        Irreversible. Uploaded objects stay in storage; the orphan report
        lists them afterwards.
        """
        identity = require_identity(identity)
        try:
            self.progress_store.clear_all(identity.user_id)
            self.profile_store.delete_profile(identity.user_id)
        except Exception as e:
            logger.error(f"Failed to clear data for user {identity.user_id}: {str(e)}")
            raise MetadataError("Failed to clear user data", user_id=identity.user_id)
        finally:
            self.cache.invalidate_user(identity.user_id)

        logger.warning(f"Cleared all data for user {identity.user_id}")
        return {"success": True}

    # ==========================================
    # Maintenance
    # ==========================================

    def find_orphaned_objects(self, user_id: str) -> List[str]:
        """
        List the user's stored objects that no progress entry references.

        Read-only. Orphans come from same-side re-uploads, failed progress
        writes, and ``clear_all_data``.
        """
        with timing_context(f"find_orphaned_objects(user={user_id})"):
            referenced = set()
            for entry in self.progress_store.get_progress(user_id).values():
                referenced.update(entry.all_keys())

            stored = self.object_store.list_keys(user_upload_prefix(user_id))
            orphans = [key for key in stored if key not in referenced]

            logger.info(f"Found {len(orphans)} orphaned objects for user {user_id} ({len(stored)} stored)")
            return orphans

    def get_system_health(self) -> Dict[str, Any]:
        """
        Get overall system health information.

        Returns:
            Health status dictionary; ``status`` is ``healthy`` or ``error``
        """
        timestamp = format_timestamp(utc_now())
        try:
            with timing_context("get_system_health"):
                self.object_store.check_access()
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return {"status": "error", "timestamp": timestamp, "error": str(e)}

        return {
            "status": "healthy",
            "timestamp": timestamp,
            "object_store": self.object_store.__class__.__name__,
            "progress_backend": self.progress_store.backend.__class__.__name__,
            "cache": self.cache.get_cache_stats(),
        }


def create_vault(config: Optional[VaultConfig] = None, s3_client=None) -> DocumentVault:
    """
    Create a DocumentVault wired from configuration.

    ``progress_backend="s3"`` keeps progress and profiles as JSON next to
    the uploads; ``"memory"`` keeps uploads and records in process.

    Args:
        config: Vault configuration (defaults to the global config)
        s3_client: Preconfigured boto3 client (defaults to one built from config)

    Example:
        vault = create_vault()
        vault.get_document_progress(identity)
    """
    config = config or get_config()

    if config.progress_backend == "memory":
        object_store: ObjectStore = MemoryObjectStore()
        progress_store = ProgressStore(MemoryProgressBackend())
        profile_store = ProfileStore(MemoryProfileBackend())
    else:
        s3_store = S3ObjectStore(config.aws_s3_bucket, s3_client=s3_client, config=config)
        object_store = s3_store
        progress_store = ProgressStore(S3ProgressBackend(s3_store.bucket, s3_client=s3_store.s3_client))
        profile_store = ProfileStore(S3ProfileBackend(s3_store.bucket, s3_client=s3_store.s3_client))

    return DocumentVault(
        object_store,
        progress_store=progress_store,
        profile_store=profile_store,
        cache=VaultCache(config=config),
        config=config,
    )
