"""
Identity verification.

The vault never signs users in. It receives a token minted by the external
identity provider and turns it into an ``Identity``; anything else is
``UNAUTHENTICATED``.

Token claims:

- sub: user id (required)
- email: optional
- iat / exp: issued-at and expiry, unix seconds
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from loguru import logger

from .config import VaultConfig, get_config
from .exceptions import AuthenticationError, ConfigurationError


@dataclass(frozen=True)
class Identity:
    """Verified caller. Every vault operation requires one."""
    user_id: str
    email: Optional[str] = None


def require_identity(identity: Optional[Identity]) -> Identity:
    """
    Reject calls that carry no verified identity.

    User ids become a storage key segment, so one containing ``/`` is
    refused as well.

    Raises:
        AuthenticationError: If ``identity`` is missing or has no usable user id
    """
    if identity is None or not identity.user_id:
        raise AuthenticationError()
    if "/" in identity.user_id:
        raise AuthenticationError("Invalid user ID", details={"user_id": identity.user_id})
    return identity


class JwtIdentityVerifier:
    """Verifies identity provider tokens signed with a shared secret."""

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None,
                 config: Optional[VaultConfig] = None):
        """
        Args:
            secret: Signing secret (defaults to ``jwt_secret`` from config)
            algorithm: JWT algorithm (defaults to ``jwt_algorithm`` from config)
            config: Vault configuration (defaults to the global config)

        Raises:
            ConfigurationError: If no secret is configured
        """
        if secret is None or algorithm is None:
            config = config or get_config()
            secret = secret or config.jwt_secret
            algorithm = algorithm or config.jwt_algorithm
        if not secret:
            raise ConfigurationError("JWT secret is not configured", config_key="jwt_secret")

        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> Identity:
        """
        Decode and validate a token.

        Returns:
            Identity: The verified caller

        Raises:
            AuthenticationError: If the token is missing, expired, tampered
                with, or lacks a ``sub`` claim
        """
        if not token:
            raise AuthenticationError()

        try:
            payload: Dict[str, Any] = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected identity token: {str(e)}")
            raise AuthenticationError(f"Invalid token: {str(e)}")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token: missing user ID claim")

        return require_identity(Identity(user_id=str(user_id), email=payload.get("email")))


def create_identity_token(user_id: str, secret: str, email: Optional[str] = None,
                          expires_in: int = 3600, algorithm: str = "HS256") -> str:
    """
    Mint a token in the identity provider's format.

    Used by development tooling and tests; production tokens come from the
    provider itself.
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm=algorithm)
