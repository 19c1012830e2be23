"""Shared fixtures for the papertrail test suite."""

import base64
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from botocore.config import Config
from moto import mock_aws

from papertrail.vault.auth import Identity
from papertrail.vault.cache import MemoryCache, VaultCache
from papertrail.vault.config import VaultConfig, set_config
from papertrail.vault.object_store import MemoryObjectStore
from papertrail.vault.profile import ProfileStore
from papertrail.vault.progress import ProgressStore
from papertrail.vault.vault import DocumentVault


TEST_BUCKET = "papertrail-test-bucket"
TEST_REGION = "us-east-1"
TEST_SECRET = "test-jwt-secret-with-at-least-32-bytes"
USER_ID = "user-123"
OTHER_USER_ID = "user-456"


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class FakeClock:
    """Deterministic clock; every reading advances by one second."""

    def __init__(self, start: datetime = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches for real ones"""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)


@pytest.fixture
def config():
    """Vault configuration installed as the global config for the test"""
    vault_config = VaultConfig(
        aws_s3_bucket=TEST_BUCKET,
        aws_region=TEST_REGION,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        jwt_secret=TEST_SECRET,
        environment="test",
        progress_backend="memory",
        log_level="DEBUG",
    )
    set_config(vault_config)
    yield vault_config
    set_config(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def identity():
    return Identity(user_id=USER_ID, email="jane@example.com")


@pytest.fixture
def other_identity():
    return Identity(user_id=OTHER_USER_ID)


@pytest.fixture
def object_store():
    return MemoryObjectStore()


@pytest.fixture
def vault(config, clock, object_store):
    """Vault wired entirely in memory"""
    return DocumentVault(
        object_store,
        progress_store=ProgressStore(clock=clock),
        profile_store=ProfileStore(clock=clock),
        cache=VaultCache(MemoryCache(default_ttl=60)),
        config=config,
        clock=clock,
    )


@pytest.fixture
def s3_client():
    """Mock S3 with the test bucket created"""
    with mock_aws():
        client = boto3.client(
            "s3",
            region_name=TEST_REGION,
            config=Config(signature_version="s3v4"),
        )
        client.create_bucket(Bucket=TEST_BUCKET)
        yield client
