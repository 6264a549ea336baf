"""
Configuration management for bomrepo.

This module handles environment variables, storage backend options,
retention policy and logging settings for the repository server.
"""

import sys
from typing import Optional, Dict, Any
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from loguru import logger


STORAGE_TYPES = ("FileSystem", "S3")


class RepoConfig(BaseSettings):
    """Configuration settings for the BOM repository."""

    model_config = SettingsConfigDict(
        env_prefix="BOMREPO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage selection
    storage_type: str = Field(default="FileSystem")

    # FileSystem options
    directory: Path = Field(default=Path("repo"))

    # S3 options
    s3_endpoint: str = Field(default="")
    s3_access_key: Optional[str] = Field(default=None)
    s3_secret_key: Optional[str] = Field(default=None)
    s3_region: str = Field(default="us-east-1")
    s3_bucket_name: str = Field(default="")
    s3_use_http: bool = Field(default=False)
    s3_force_path_style: bool = Field(default=False)

    # Retention policy, 0 means unlimited
    max_bom_versions: int = Field(default=0, ge=0)
    max_bom_age_days: int = Field(default=0, ge=0)

    # Background loops
    cache_refresh_seconds: float = Field(default=600, gt=0)
    retention_interval_seconds: float = Field(default=3600, gt=0)
    shutdown_grace_seconds: Optional[float] = Field(default=30)

    # Allowed methods
    allow_get: bool = Field(default=True)
    allow_post: bool = Field(default=True)
    allow_delete: bool = Field(default=True)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )
    log_file: Optional[Path] = Field(default=None)

    @field_validator("storage_type")
    @classmethod
    def validate_storage_type(cls, v: str) -> str:
        """Normalise the storage type to one of the known engines."""
        for storage_type in STORAGE_TYPES:
            if v.lower() == storage_type.lower():
                return storage_type
        raise ValueError(f"Storage type must be one of: {list(STORAGE_TYPES)}")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_s3_options(self) -> "RepoConfig":
        """Require a bucket name when the S3 engine is selected."""
        if self.storage_type == "S3":
            name = self.s3_bucket_name
            if not name:
                raise ValueError("s3_bucket_name is required for the S3 storage type")
            if len(name) < 3 or len(name) > 63:
                raise ValueError("Bucket name must be between 3 and 63 characters")
            if not name.replace("-", "").replace(".", "").isalnum():
                raise ValueError("Bucket name must contain only alphanumeric characters, hyphens, and periods")
            self.s3_bucket_name = name.lower()
        return self

    def get_s3_client_kwargs(self) -> Dict[str, Any]:
        """Get boto3 client keyword arguments for the configured endpoint."""
        kwargs: Dict[str, Any] = {
            "aws_access_key_id": self.s3_access_key,
            "aws_secret_access_key": self.s3_secret_key,
            "region_name": self.s3_region,
        }
        if self.s3_endpoint.startswith(("http://", "https://")):
            kwargs["endpoint_url"] = self.s3_endpoint
        elif self.s3_endpoint:
            protocol = "http" if self.s3_use_http else "https"
            kwargs["endpoint_url"] = f"{protocol}://{self.s3_endpoint}"
        return {k: v for k, v in kwargs.items() if v is not None}

    def is_filesystem(self) -> bool:
        """Check if the filesystem engine is selected."""
        return self.storage_type == "FileSystem"


def load_config(config_file: Optional[str] = None, **overrides: Any) -> RepoConfig:
    """
    Load configuration from environment variables and optional config file.

    Args:
        config_file: Optional path to .env file
        **overrides: Explicit field values taking precedence over the environment

    Returns:
        RepoConfig instance

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    from .exceptions import ConfigurationError

    if config_file:
        if not Path(config_file).exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        load_dotenv(config_file)
    elif Path(".env").exists():
        load_dotenv(".env")

    try:
        config = RepoConfig(**overrides)
    except ValueError as e:
        raise ConfigurationError(f"Failed to load configuration: {str(e)}")

    logger.info(f"Configuration loaded successfully for storage type: {config.storage_type}")
    return config


def setup_logging(config: RepoConfig) -> None:
    """
    Setup logging configuration based on config settings.

    Args:
        config: RepoConfig instance
    """
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format=config.log_format,
        level=config.log_level,
        colorize=True,
    )

    if config.log_file:
        logger.add(
            sink=str(config.log_file),
            format=config.log_format,
            level=config.log_level,
            rotation="10 MB",
            retention="30 days",
            compression="gz",
        )


# Global configuration instance
_config: Optional[RepoConfig] = None


def get_config() -> RepoConfig:
    """
    Get the global configuration instance.

    Returns:
        RepoConfig: Global configuration instance
    """
    global _config
    if _config is None:
        _config = load_config()
        setup_logging(_config)
    return _config


def set_config(config: RepoConfig) -> None:
    """
    Set the global configuration instance.

    Args:
        config: RepoConfig instance to set as global
    """
    global _config
    _config = config
    setup_logging(config)
