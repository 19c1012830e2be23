"""
Object store adapters.

An object store writes and deletes opaque blobs at path keys and signs
short-lived read URLs. It has no notion of ownership of its own:
``sign_read_url`` only refuses keys outside the caller's upload namespace,
and every other authorization decision belongs to the vault.
"""

from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from loguru import logger

from .config import VaultConfig, get_config
from .exceptions import (
    AuthorizationError,
    S3ObjectNotFoundError,
    S3OperationError,
    StorageWriteError,
)
from .s3_ops import (
    create_s3_client,
    put_object_content,
    get_object_content,
    object_exists,
    delete_object,
    list_objects_with_prefix,
    generate_presigned_get_url,
    check_bucket_access,
)
from .utils import is_key_owned_by


DEFAULT_SIGNED_URL_TTL = 120


class ObjectStore(ABC):
    """Abstract base class for object store backends."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` at ``key``, replacing existing content."""
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read the object at ``key``."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether ``key`` holds an object."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""
        pass

    @abstractmethod
    def list_keys(self, prefix: str) -> List[str]:
        """List keys under ``prefix``."""
        pass

    @abstractmethod
    def _presign(self, key: str, ttl_seconds: int) -> str:
        """Produce the signed URL; authorization has already happened."""
        pass

    def check_access(self) -> None:
        """Raise if the backing storage is unreachable."""
        pass

    def sign_read_url(self, key: str, user_id: str, ttl_seconds: int = DEFAULT_SIGNED_URL_TTL) -> str:
        """
        Sign a time-limited read URL for a key the user owns.

        Args:
            key: Storage key to sign
            user_id: Authenticated user requesting the URL
            ttl_seconds: URL lifetime

        Returns:
            str: Bearer URL valid for ``ttl_seconds``

        Raises:
            AuthorizationError: If the key is outside ``user_uploads/{user_id}/``
        """
        if not is_key_owned_by(key, user_id):
            logger.warning(f"Refused to sign key outside caller namespace: user={user_id} key={key}")
            raise AuthorizationError(
                "Key is outside the caller's upload namespace",
                user_id=user_id,
                key=key,
            )
        return self._presign(key, ttl_seconds)


class S3ObjectStore(ObjectStore):
    """Object store backed by an S3 bucket."""

    def __init__(self, bucket_name: Optional[str] = None, s3_client=None, config: Optional[VaultConfig] = None):
        """
        Initialize the S3 object store.

        Args:
            bucket_name: S3 bucket name (defaults to config)
            s3_client: Preconfigured boto3 client (defaults to one built from config)
            config: Vault configuration (defaults to the global config)
        """
        config = config or get_config()
        self.bucket = bucket_name or config.aws_s3_bucket
        self.s3_client = s3_client or create_s3_client(config)
        logger.info(f"S3ObjectStore initialized for bucket: {self.bucket}")

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            put_object_content(self.bucket, key, data, content_type=content_type, s3_client=self.s3_client)
        except S3OperationError as e:
            raise StorageWriteError(
                f"Failed to upload file: {e.message}",
                operation="put",
                bucket=self.bucket,
                key=key,
            )

    def get(self, key: str) -> bytes:
        return get_object_content(self.bucket, key, s3_client=self.s3_client)

    def exists(self, key: str) -> bool:
        return object_exists(self.bucket, key, s3_client=self.s3_client)

    def delete(self, key: str) -> None:
        delete_object(self.bucket, key, s3_client=self.s3_client)

    def list_keys(self, prefix: str) -> List[str]:
        objects = list_objects_with_prefix(self.bucket, prefix, max_keys=10000, s3_client=self.s3_client)
        return [obj['Key'] for obj in objects]

    def check_access(self) -> None:
        check_bucket_access(self.bucket, s3_client=self.s3_client)

    def _presign(self, key: str, ttl_seconds: int) -> str:
        return generate_presigned_get_url(self.bucket, key, ttl_seconds, s3_client=self.s3_client)


class MemoryObjectStore(ObjectStore):
    """In-memory object store for development and tests."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self._lock = Lock()
        logger.info("Memory object store initialized")

    def put(self, key: str, data: bytes, content_type: str) -> None:
        with self._lock:
            self.objects[key] = (bytes(data), content_type)

    def get(self, key: str) -> bytes:
        with self._lock:
            if key not in self.objects:
                raise S3ObjectNotFoundError(f"Object not found: memory://{key}", operation="get", key=key)
            return self.objects[key][0]

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self.objects

    def delete(self, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)

    def list_keys(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(key for key in self.objects if key.startswith(prefix))

    def content_type(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self.objects.get(key)
            return entry[1] if entry else None

    def _presign(self, key: str, ttl_seconds: int) -> str:
        return f"memory://{quote(key)}?expires_in={ttl_seconds}"
