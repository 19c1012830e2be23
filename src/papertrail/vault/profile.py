"""
User profile validation and persistence.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Optional

from loguru import logger

from .exceptions import ProfileValidationError, S3ObjectNotFoundError
from .s3_ops import put_object_content, get_object_content, delete_object
from .utils import format_timestamp, parse_timestamp, profile_metadata_key, utc_now


PHONE_PATTERN = re.compile(r"^\+?[\d\-\s()]{10,}$")
ZIP_CODE_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")

# Request field names of the address group, in the order they are reported
ADDRESS_FIELDS = ("address", "city", "state", "zipCode")


@dataclass(frozen=True)
class Address:
    street: str
    city: str
    state: str
    zip_code: str

    def to_dict(self) -> Dict[str, str]:
        return {"street": self.street, "city": self.city, "state": self.state, "zipCode": self.zip_code}

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "Address":
        return cls(
            street=data["street"],
            city=data["city"],
            state=data["state"],
            zip_code=data["zipCode"],
        )


@dataclass(frozen=True)
class UserProfile:
    """Contact details of one user."""
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[Address] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
        }
        if self.phone is not None:
            data["phone"] = self.phone
        if self.address is not None:
            data["address"] = self.address.to_dict()
        if self.updated_at is not None:
            data["updatedAt"] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        address = data.get("address")
        return cls(
            first_name=data["firstName"],
            last_name=data["lastName"],
            email=data["email"],
            phone=data.get("phone"),
            address=Address.from_dict(address) if address else None,
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


def _text(fields: Dict[str, Any], name: str) -> Optional[str]:
    """Trimmed string value; None when absent, blank, or not a string."""
    value = fields.get(name)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def validate_profile_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalize a profile update.

    Accepts the flat request shape: ``firstName``, ``lastName``, ``email``,
    optional ``phone`` and the optional address group ``address``, ``city``,
    ``state``, ``zipCode`` (all four or none).

    Args:
        fields: Raw request fields

    Returns:
        Dict: Normalized fields in stored form (``address`` nested)

    Raises:
        ProfileValidationError: ``INVALID_ARGUMENT`` with ``field`` naming
            the first offending field
    """
    if not isinstance(fields, dict):
        raise ProfileValidationError("Profile fields must be an object")

    first_name = _text(fields, "firstName")
    if first_name is None:
        raise ProfileValidationError("First name is required", field="firstName")

    last_name = _text(fields, "lastName")
    if last_name is None:
        raise ProfileValidationError("Last name is required", field="lastName")

    email = _text(fields, "email")
    if email is None or "@" not in email:
        raise ProfileValidationError("Valid email is required", field="email", value=fields.get("email"))

    normalized: Dict[str, Any] = {
        "firstName": first_name,
        "lastName": last_name,
        "email": email.lower(),
    }

    raw_phone = fields.get("phone")
    if raw_phone:
        phone = _text(fields, "phone")
        if phone is None or not PHONE_PATTERN.match(phone):
            raise ProfileValidationError("Invalid phone number format", field="phone", value=raw_phone)
        normalized["phone"] = phone

    if any(fields.get(name) for name in ADDRESS_FIELDS):
        values = {name: _text(fields, name) for name in ADDRESS_FIELDS}
        missing = [name for name in ADDRESS_FIELDS if values[name] is None]
        if missing:
            raise ProfileValidationError(
                "All address fields (address, city, state, zipCode) must be provided",
                field=missing[0],
                details={"missing": missing},
            )
        if not ZIP_CODE_PATTERN.match(values["zipCode"]):
            raise ProfileValidationError("Invalid ZIP code format", field="zipCode", value=fields.get("zipCode"))

        normalized["address"] = Address(
            street=values["address"],
            city=values["city"],
            state=values["state"].upper(),
            zip_code=values["zipCode"],
        ).to_dict()

    return normalized


class ProfileBackend(ABC):
    """Abstract base class for profile persistence."""

    @abstractmethod
    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def save(self, user_id: str, record: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self, user_id: str) -> None:
        pass


class MemoryProfileBackend(ProfileBackend):
    """In-memory profile persistence."""

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(user_id)
        return json.loads(json.dumps(record)) if record is not None else None

    def save(self, user_id: str, record: Dict[str, Any]) -> None:
        self.records[user_id] = json.loads(json.dumps(record))

    def delete(self, user_id: str) -> None:
        self.records.pop(user_id, None)


class S3ProfileBackend(ProfileBackend):
    """Profiles kept as JSON documents in the vault bucket."""

    def __init__(self, bucket: str, s3_client=None):
        self.bucket = bucket
        self.s3_client = s3_client

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            content = get_object_content(self.bucket, profile_metadata_key(user_id), s3_client=self.s3_client)
        except S3ObjectNotFoundError:
            return None
        return json.loads(content.decode("utf-8"))

    def save(self, user_id: str, record: Dict[str, Any]) -> None:
        put_object_content(
            self.bucket,
            profile_metadata_key(user_id),
            json.dumps(record, indent=2, sort_keys=True),
            content_type="application/json",
            s3_client=self.s3_client,
        )

    def delete(self, user_id: str) -> None:
        delete_object(self.bucket, profile_metadata_key(user_id), s3_client=self.s3_client)


class ProfileStore:
    """Per-user profile records with merge writes."""

    def __init__(self, backend: Optional[ProfileBackend] = None, clock: Callable[[], datetime] = utc_now):
        self.backend = backend or MemoryProfileBackend()
        self.clock = clock
        self._lock = Lock()
        logger.info(f"ProfileStore initialized with {self.backend.__class__.__name__}")

    def merge_profile(self, user_id: str, normalized: Dict[str, Any]) -> UserProfile:
        """
        Merge already-validated fields into the stored profile.

        Fields not present in ``normalized`` keep their stored values; a
        supplied ``address`` replaces the stored one as a whole.
        """
        with self._lock:
            record = self.backend.load(user_id) or {}
            record.update(normalized)
            record["updatedAt"] = format_timestamp(self.clock())
            self.backend.save(user_id, record)

        logger.info(f"Updated profile for user {user_id}")
        return UserProfile.from_dict(record)

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        record = self.backend.load(user_id)
        return UserProfile.from_dict(record) if record else None

    def delete_profile(self, user_id: str) -> None:
        with self._lock:
            self.backend.delete(user_id)
        logger.warning(f"Deleted profile for user {user_id}")
