"""
Storage engines and the backend factory.
"""

from ..config import RepoConfig
from ..exceptions import ConfigurationError
from .base import INTERNAL_STORAGE_VERSION, StorageBackend
from .filesystem import FileSystemBackend
from .s3 import S3Backend, create_s3_client


def create_backend(config: RepoConfig) -> StorageBackend:
    """
    Select the storage engine named by config.storage_type.

    Args:
        config: RepoConfig instance

    Returns:
        StorageBackend: FileSystemBackend or S3Backend

    Raises:
        ConfigurationError: If the storage type is unknown
    """
    if config.storage_type == "FileSystem":
        return FileSystemBackend(config.directory)
    if config.storage_type == "S3":
        return S3Backend(create_s3_client(config), config.s3_bucket_name)
    raise ConfigurationError(f"Unsupported storage type: {config.storage_type}", config_key="storage_type")


__all__ = [
    "FileSystemBackend",
    "INTERNAL_STORAGE_VERSION",
    "S3Backend",
    "StorageBackend",
    "create_backend",
    "create_s3_client",
]
