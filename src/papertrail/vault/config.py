"""
Configuration management for the papertrail vault.

This module handles environment variables, AWS credentials, identity token
settings and logging setup for the document vault.
"""

import sys
from typing import Optional, Dict
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from loguru import logger

from .exceptions import ConfigurationError


class VaultConfig(BaseSettings):
    """Configuration settings for the document vault."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS Configuration
    aws_region: str = Field(default="us-east-1")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    aws_session_token: Optional[str] = Field(default=None)

    # S3 Configuration
    aws_s3_bucket: str
    s3_endpoint_url: Optional[str] = Field(default=None)
    signed_url_ttl_seconds: int = Field(default=120)
    max_upload_bytes: int = Field(default=5 * 1024 * 1024)

    # Metadata storage: "s3" keeps progress/profile JSON next to the uploads
    progress_backend: str = Field(default="s3")

    # Cache Configuration
    cache_ttl_seconds: int = Field(default=300)
    enable_redis_cache: bool = Field(default=False)
    redis_url: Optional[str] = Field(default=None)

    # Identity tokens
    jwt_secret: Optional[str] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )

    # Environment
    environment: str = Field(default="dev")

    @field_validator("aws_s3_bucket")
    @classmethod
    def validate_bucket_name(cls, v):
        """Validate S3 bucket name format."""
        if not v:
            raise ValueError("AWS_S3_BUCKET environment variable is required")

        if len(v) < 3 or len(v) > 63:
            raise ValueError("Bucket name must be between 3 and 63 characters")

        if not v.replace("-", "").replace(".", "").isalnum():
            raise ValueError("Bucket name must contain only alphanumeric characters, hyphens, and periods")

        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["dev", "test", "staging", "prod"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    @field_validator("progress_backend")
    @classmethod
    def validate_progress_backend(cls, v):
        valid_backends = ["s3", "memory"]
        if v.lower() not in valid_backends:
            raise ValueError(f"Progress backend must be one of: {valid_backends}")
        return v.lower()

    @field_validator("signed_url_ttl_seconds", "max_upload_bytes")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    def get_aws_credentials(self) -> Dict[str, Optional[str]]:
        """Get AWS credentials as a dictionary."""
        return {
            "aws_access_key_id": self.aws_access_key_id,
            "aws_secret_access_key": self.aws_secret_access_key,
            "aws_session_token": self.aws_session_token,
            "region_name": self.aws_region,
        }

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "prod"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "dev"


def load_config(config_file: Optional[str] = None) -> VaultConfig:
    """
    Load configuration from environment variables and optional config file.

    Args:
        config_file: Optional path to .env file

    Returns:
        VaultConfig instance

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    if config_file:
        if not Path(config_file).exists():
            raise ConfigurationError(f"Config file not found: {config_file}", config_key="config_file")
        load_dotenv(config_file)
    elif Path(".env").exists():
        load_dotenv(".env")

    try:
        config = VaultConfig()
        logger.info(f"Configuration loaded successfully for environment: {config.environment}")
        return config
    except Exception as e:
        raise ConfigurationError(f"Failed to load configuration: {str(e)}")


def setup_logging(config: VaultConfig) -> None:
    """
    Setup logging configuration based on config settings.

    Args:
        config: VaultConfig instance
    """
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format=config.log_format,
        level=config.log_level,
        colorize=True,
    )

    if config.is_production():
        logger.add(
            sink="logs/papertrail.log",
            format=config.log_format,
            level=config.log_level,
            rotation="10 MB",
            retention="30 days",
            compression="gz",
        )


# Global configuration instance
_config: Optional[VaultConfig] = None


def get_config() -> VaultConfig:
    """
    Get the global configuration instance.

    Returns:
        VaultConfig: Global configuration instance
    """
    global _config
    if _config is None:
        _config = load_config()
        setup_logging(_config)
    return _config


def set_config(config: Optional[VaultConfig]) -> None:
    """
    Set the global configuration instance.

    Passing ``None`` clears it so the next ``get_config`` reloads from the
    environment.
    """
    global _config
    _config = config
    if config is not None:
        setup_logging(config)
