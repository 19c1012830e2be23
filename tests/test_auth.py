"""Tests for identity token verification"""

import jwt
import pytest

from conftest import TEST_SECRET
from papertrail.vault.auth import Identity, JwtIdentityVerifier, create_identity_token, require_identity
from papertrail.vault.exceptions import AuthenticationError, ConfigurationError


@pytest.fixture
def verifier():
    return JwtIdentityVerifier(secret=TEST_SECRET, algorithm="HS256")


class TestJwtIdentityVerifier:
    """Test token decoding"""

    def test_valid_token(self, verifier):
        token = create_identity_token("user-123", TEST_SECRET, email="jane@example.com")

        assert verifier.verify(token) == Identity(user_id="user-123", email="jane@example.com")

    def test_expired_token(self, verifier):
        token = create_identity_token("user-123", TEST_SECRET, expires_in=-10)

        with pytest.raises(AuthenticationError, match="expired"):
            verifier.verify(token)

    def test_wrong_secret(self, verifier):
        token = create_identity_token("user-123", "another-secret-that-is-long-enough!!")

        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.code == "UNAUTHENTICATED"

    def test_missing_subject(self, verifier):
        token = jwt.encode({"email": "jane@example.com"}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(AuthenticationError, match="missing user ID"):
            verifier.verify(token)

    def test_subject_with_slash_is_rejected(self, verifier):
        token = create_identity_token("alice/x", TEST_SECRET)

        with pytest.raises(AuthenticationError, match="Invalid user ID"):
            verifier.verify(token)

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_missing_or_garbage_token(self, verifier, token):
        with pytest.raises(AuthenticationError):
            verifier.verify(token)

    def test_secret_from_config(self, config):
        verifier = JwtIdentityVerifier(config=config)
        assert verifier.verify(create_identity_token("u1", TEST_SECRET)).user_id == "u1"

    def test_missing_secret_is_a_configuration_error(self, config):
        with pytest.raises(ConfigurationError):
            JwtIdentityVerifier(config=config.model_copy(update={"jwt_secret": None}))


class TestRequireIdentity:
    """Test the authentication gate"""

    def test_none_is_rejected(self):
        with pytest.raises(AuthenticationError, match="User not authenticated"):
            require_identity(None)

    def test_empty_user_id_is_rejected(self):
        with pytest.raises(AuthenticationError):
            require_identity(Identity(user_id=""))

    def test_identity_passes_through(self):
        identity = Identity(user_id="user-123")
        assert require_identity(identity) is identity

    def test_user_id_with_slash_is_rejected(self):
        with pytest.raises(AuthenticationError):
            require_identity(Identity(user_id="user-123/passport"))
