"""Tests for the object store adapters, S3 via moto"""

import pytest

from conftest import TEST_BUCKET, USER_ID, OTHER_USER_ID
from papertrail.vault.exceptions import (
    AuthorizationError,
    S3ObjectNotFoundError,
    StorageWriteError,
)
from papertrail.vault.object_store import MemoryObjectStore, S3ObjectStore
from papertrail.vault.utils import build_upload_key


OWN_KEY = build_upload_key(USER_ID, "passport", "pdf", side="front", timestamp_ms=1705320000000)
FOREIGN_KEY = build_upload_key(OTHER_USER_ID, "passport", "pdf", side="front", timestamp_ms=1705320000000)


@pytest.fixture
def s3_store(config, s3_client):
    return S3ObjectStore(TEST_BUCKET, s3_client=s3_client, config=config)


class TestS3ObjectStore:
    """Test S3ObjectStore against a mocked bucket"""

    def test_put_then_get(self, s3_store, s3_client):
        s3_store.put(OWN_KEY, b"content", "application/pdf")

        assert s3_store.get(OWN_KEY) == b"content"
        head = s3_client.head_object(Bucket=TEST_BUCKET, Key=OWN_KEY)
        assert head["ContentType"] == "application/pdf"

    def test_put_twice_same_bytes_is_idempotent(self, s3_store):
        s3_store.put(OWN_KEY, b"same", "application/pdf")
        s3_store.put(OWN_KEY, b"same", "application/pdf")

        assert s3_store.get(OWN_KEY) == b"same"
        assert s3_store.list_keys(f"user_uploads/{USER_ID}/") == [OWN_KEY]

    def test_put_overwrites(self, s3_store):
        s3_store.put(OWN_KEY, b"first", "application/pdf")
        s3_store.put(OWN_KEY, b"second", "application/pdf")

        assert s3_store.get(OWN_KEY) == b"second"

    def test_exists_and_delete(self, s3_store):
        s3_store.put(OWN_KEY, b"content", "application/pdf")
        assert s3_store.exists(OWN_KEY)

        s3_store.delete(OWN_KEY)
        assert not s3_store.exists(OWN_KEY)

    def test_delete_missing_key_is_success(self, s3_store):
        s3_store.delete(OWN_KEY)

    def test_get_missing_key_raises_not_found(self, s3_store):
        with pytest.raises(S3ObjectNotFoundError):
            s3_store.get(OWN_KEY)

    def test_list_keys_is_scoped_to_prefix(self, s3_store):
        s3_store.put(OWN_KEY, b"mine", "application/pdf")
        s3_store.put(FOREIGN_KEY, b"theirs", "application/pdf")

        assert s3_store.list_keys(f"user_uploads/{USER_ID}/") == [OWN_KEY]

    def test_put_to_missing_bucket_raises_storage_write_error(self, config, s3_client):
        store = S3ObjectStore("no-such-bucket", s3_client=s3_client, config=config)

        with pytest.raises(StorageWriteError) as exc_info:
            store.put(OWN_KEY, b"content", "application/pdf")

        assert exc_info.value.code == "STORAGE_WRITE_FAILED"

    def test_check_access(self, s3_store):
        s3_store.check_access()


class TestSignedUrls:
    """Test signing and the namespace check"""

    def test_signed_url_for_own_key(self, s3_store):
        s3_store.put(OWN_KEY, b"content", "application/pdf")

        url = s3_store.sign_read_url(OWN_KEY, USER_ID)

        assert TEST_BUCKET in url
        assert "passport/front_1705320000000.pdf" in url
        assert "X-Amz-Expires=120" in url

    def test_custom_ttl(self, s3_store):
        assert "X-Amz-Expires=30" in s3_store.sign_read_url(OWN_KEY, USER_ID, ttl_seconds=30)

    def test_foreign_key_is_refused(self, s3_store):
        with pytest.raises(AuthorizationError) as exc_info:
            s3_store.sign_read_url(FOREIGN_KEY, USER_ID)

        assert exc_info.value.code == "PERMISSION_DENIED"

    @pytest.mark.parametrize("key", [
        f"user_uploads/{USER_ID}/../{OTHER_USER_ID}/passport/front_1.pdf",
        f"user_uploads/{USER_ID}/./passport/front_1.pdf",
        f"user_uploads/{USER_ID}//front_1.pdf",
        f"user_uploads/{USER_ID}",
        f"user_uploads/{USER_ID}/nested/passport/front_1.pdf",
        f"user_uploads/{USER_ID}/passport/scans/front_1.pdf",
        f"users/{USER_ID}/documents/progress.json",
        "",
    ])
    def test_keys_outside_namespace_are_refused(self, s3_store, key):
        with pytest.raises(AuthorizationError):
            s3_store.sign_read_url(key, USER_ID)


class TestMemoryObjectStore:
    """Test the in-memory store used in development"""

    def test_round_trip(self):
        store = MemoryObjectStore()
        store.put(OWN_KEY, b"content", "image/png")

        assert store.get(OWN_KEY) == b"content"
        assert store.content_type(OWN_KEY) == "image/png"
        assert store.list_keys("user_uploads/") == [OWN_KEY]

    def test_delete_missing_is_success(self):
        MemoryObjectStore().delete(OWN_KEY)

    def test_get_missing_raises(self):
        with pytest.raises(S3ObjectNotFoundError):
            MemoryObjectStore().get(OWN_KEY)

    def test_signed_url(self):
        url = MemoryObjectStore().sign_read_url(OWN_KEY, USER_ID)
        assert url.startswith("memory://user_uploads/")
        assert url.endswith("expires_in=120")

    def test_signing_enforces_namespace(self):
        with pytest.raises(AuthorizationError):
            MemoryObjectStore().sign_read_url(FOREIGN_KEY, USER_ID)
