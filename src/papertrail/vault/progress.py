"""
Document progress state management.

Each user has one progress record holding an entry per document type.
Entries change only through tagged patches (``UploadPatch``,
``ReplacementPatch``, ``StatusOnly``) merged by ``apply_patch``, so the
effect of every write on every field is spelled out in one place.

Lifecycle per (user, document type):

    NOT_STARTED -> IN_PROGRESS   replacement requested
    NOT_STARTED -> COMPLETED     file uploaded
    IN_PROGRESS -> COMPLETED     file uploaded
    COMPLETED   -> COMPLETED     another side or additional file uploaded
    COMPLETED   -> IN_PROGRESS   replacement requested again (keys are kept)
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from loguru import logger

from .catalog import DocumentTypeDefinition
from .exceptions import S3ObjectNotFoundError
from .feed import ProgressFeed
from .s3_ops import put_object_content, get_object_content, delete_object
from .utils import (
    format_timestamp,
    parse_timestamp,
    progress_metadata_key,
    timing_context,
    utc_now,
)
from .validator import Side


class ProgressStatus(Enum):
    """Progress of one document type for one user."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class RequestType(Enum):
    """How the user is satisfying a document type."""
    UPLOAD = "upload"
    REQUEST_REPLACEMENT = "request_replacement"


@dataclass
class DocumentProgressEntry:
    """Progress of one document type: status plus the keys filed for it."""
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    request_type: Optional[RequestType] = None
    updated_at: Optional[datetime] = None
    front_key: Optional[str] = None
    back_key: Optional[str] = None
    additional_keys: List[str] = field(default_factory=list)
    estimated_time: Optional[str] = None

    def has_both_sides(self) -> bool:
        return self.front_key is not None and self.back_key is not None

    def missing_sides(self, definition: DocumentTypeDefinition) -> List[str]:
        """Sides still needed before the document is physically complete."""
        if not definition.requires_both_sides:
            if self.front_key or self.additional_keys:
                return []
            return [Side.FRONT.value]
        missing = []
        if self.front_key is None:
            missing.append(Side.FRONT.value)
        if self.back_key is None:
            missing.append(Side.BACK.value)
        return missing

    def all_keys(self) -> List[str]:
        keys = [key for key in (self.front_key, self.back_key) if key]
        return keys + list(self.additional_keys)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire form, omitting unset fields."""
        data: Dict[str, Any] = {"status": self.status.value}
        if self.request_type is not None:
            data["requestType"] = self.request_type.value
        if self.updated_at is not None:
            data["updatedAt"] = format_timestamp(self.updated_at)
        if self.front_key is not None:
            data["frontKey"] = self.front_key
        if self.back_key is not None:
            data["backKey"] = self.back_key
        if self.additional_keys:
            data["additionalKeys"] = list(self.additional_keys)
        if self.estimated_time is not None:
            data["estimatedTime"] = self.estimated_time
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentProgressEntry":
        """Parse the wire form; also reads the older frontImage/backImage/additionalFiles names."""
        request_type = data.get("requestType")
        return cls(
            status=ProgressStatus(data.get("status", ProgressStatus.NOT_STARTED.value)),
            request_type=RequestType(request_type) if request_type else None,
            updated_at=parse_timestamp(data.get("updatedAt")),
            front_key=data.get("frontKey", data.get("frontImage")),
            back_key=data.get("backKey", data.get("backImage")),
            additional_keys=list(data.get("additionalKeys", data.get("additionalFiles", []))),
            estimated_time=data.get("estimatedTime"),
        )


@dataclass(frozen=True)
class UploadPatch:
    """A file landed in storage for ``side``."""
    side: Side
    key: str


@dataclass(frozen=True)
class ReplacementPatch:
    """The user asked for a replacement document."""
    estimated_time: str


@dataclass(frozen=True)
class StatusOnly:
    """Set the status without touching anything else."""
    status: ProgressStatus


ProgressPatch = Union[UploadPatch, ReplacementPatch, StatusOnly]


def apply_patch(entry: Optional[DocumentProgressEntry], patch: ProgressPatch, now: datetime) -> DocumentProgressEntry:
    """
    Merge a patch into an entry and return the new entry.

    Fields a patch does not name are carried over unchanged.

    Args:
        entry: Current entry, or None if the type has no entry yet
        patch: Tagged update
        now: Timestamp recorded as ``updated_at``

    Returns:
        New DocumentProgressEntry; ``entry`` is not modified
    """
    current = entry or DocumentProgressEntry()

    if isinstance(patch, UploadPatch):
        updated = replace(
            current,
            status=ProgressStatus.COMPLETED,
            request_type=RequestType.UPLOAD,
            updated_at=now,
            additional_keys=list(current.additional_keys),
        )
        if patch.side is Side.FRONT:
            updated.front_key = patch.key
        elif patch.side is Side.BACK:
            updated.back_key = patch.key
        elif patch.key not in updated.additional_keys:
            updated.additional_keys.append(patch.key)
        return updated

    if isinstance(patch, ReplacementPatch):
        return replace(
            current,
            status=ProgressStatus.IN_PROGRESS,
            request_type=RequestType.REQUEST_REPLACEMENT,
            updated_at=now,
            estimated_time=patch.estimated_time,
            additional_keys=list(current.additional_keys),
        )

    if isinstance(patch, StatusOnly):
        return replace(
            current,
            status=patch.status,
            updated_at=now,
            additional_keys=list(current.additional_keys),
        )

    raise TypeError(f"Unknown progress patch: {patch!r}")


class ProgressBackend(ABC):
    """Abstract base class for progress persistence."""

    @abstractmethod
    def load(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        """Load the raw progress record; empty when the user has none."""
        pass

    @abstractmethod
    def save(self, user_id: str, record: Dict[str, Dict[str, Any]]) -> None:
        """Persist the whole raw progress record."""
        pass

    @abstractmethod
    def delete(self, user_id: str) -> None:
        """Remove the record; a missing record is not an error."""
        pass


class MemoryProgressBackend(ProgressBackend):
    """In-memory progress persistence."""

    def __init__(self):
        self.records: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def load(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        return json.loads(json.dumps(self.records.get(user_id, {})))

    def save(self, user_id: str, record: Dict[str, Dict[str, Any]]) -> None:
        self.records[user_id] = json.loads(json.dumps(record))

    def delete(self, user_id: str) -> None:
        self.records.pop(user_id, None)


class S3ProgressBackend(ProgressBackend):
    """Progress records kept as JSON documents in the vault bucket."""

    def __init__(self, bucket: str, s3_client=None):
        self.bucket = bucket
        self.s3_client = s3_client

    def load(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        key = progress_metadata_key(user_id)
        try:
            content = get_object_content(self.bucket, key, s3_client=self.s3_client)
        except S3ObjectNotFoundError:
            return {}
        return json.loads(content.decode("utf-8"))

    def save(self, user_id: str, record: Dict[str, Dict[str, Any]]) -> None:
        put_object_content(
            self.bucket,
            progress_metadata_key(user_id),
            json.dumps(record, indent=2, sort_keys=True),
            content_type="application/json",
            s3_client=self.s3_client,
        )

    def delete(self, user_id: str) -> None:
        delete_object(self.bucket, progress_metadata_key(user_id), s3_client=self.s3_client)


Progress = Dict[str, DocumentProgressEntry]


class ProgressStore:
    """Per-user progress records with merge-patch writes and a change feed."""

    def __init__(self, backend: Optional[ProgressBackend] = None, feed: Optional[ProgressFeed] = None,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize the progress store.

        Args:
            backend: Persistence backend (defaults to in-memory)
            feed: Change feed receiving a snapshot after every write
            clock: Source of ``updated_at`` timestamps
        """
        self.backend = backend or MemoryProgressBackend()
        self.feed = feed or ProgressFeed()
        self.clock = clock
        self._lock = Lock()
        logger.info(f"ProgressStore initialized with {self.backend.__class__.__name__}")

    def upsert_progress(self, user_id: str, document_type_id: str, patch: ProgressPatch) -> DocumentProgressEntry:
        """
        Merge ``patch`` into the user's entry for ``document_type_id``.

        The entry is created if absent. Entries for other document types and
        fields the patch does not name are left untouched.

        Returns:
            The updated entry
        """
        with timing_context(f"upsert_progress(user={user_id}, type={document_type_id})"):
            with self._lock:
                record = self.backend.load(user_id)
                raw = record.get(document_type_id)
                current = DocumentProgressEntry.from_dict(raw) if raw else None

                updated = apply_patch(current, patch, self.clock())
                record[document_type_id] = updated.to_dict()
                self.backend.save(user_id, record)
                snapshot = self._parse(record)

        previous = current.status.value if current else ProgressStatus.NOT_STARTED.value
        logger.info(
            f"Progress transition for user {user_id}, {document_type_id}: "
            f"{previous} → {updated.status.value} ({type(patch).__name__})"
        )
        self.feed.publish(user_id, snapshot)
        return updated

    def get_progress(self, user_id: str) -> Progress:
        """Return every progress entry the user has, keyed by document type id."""
        return self._parse(self.backend.load(user_id))

    def get_entry(self, user_id: str, document_type_id: str) -> DocumentProgressEntry:
        """Return one entry; a fresh NOT_STARTED entry when none exists."""
        return self.get_progress(user_id).get(document_type_id, DocumentProgressEntry())

    def clear_all(self, user_id: str) -> None:
        """Delete the user's whole progress record. Irreversible."""
        with self._lock:
            self.backend.delete(user_id)
        logger.warning(f"Cleared all progress for user {user_id}")
        self.feed.publish(user_id, {})

    def subscribe_to_progress(self, user_id: str, timeout: Optional[float] = None) -> Iterator[Progress]:
        """
        Stream progress snapshots: the current one first, then one per write.

        Args:
            user_id: User to follow
            timeout: Stop after this many seconds without a change
        """
        return self.feed.stream(user_id, initial=lambda: self.get_progress(user_id), timeout=timeout)

    @staticmethod
    def _parse(record: Dict[str, Dict[str, Any]]) -> Progress:
        return {type_id: DocumentProgressEntry.from_dict(raw) for type_id, raw in record.items()}
