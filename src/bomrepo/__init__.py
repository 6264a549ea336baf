"""
bomrepo - versioned CycloneDX BOM repository.

Stores BOMs by serial number and version on a local filesystem or in S3,
serves them in XML, JSON or protobuf at any supported specification
version, and keeps a search index and retention policy running in the
background.

Usage:
    from bomrepo import BomRepoServer, load_config

    async with BomRepoServer(load_config()) as server:
        result = await server.submit(content, "application/vnd.cyclonedx+json")
        matches = server.search(name="acme-app")
"""

from .server import BomRepoServer, resolve_identifier
from .repository import RepoService, StoreResult
from .cache import BomIdentifier, BomSubset, CacheService
from .retention import RetentionReport, RetentionService
from .scheduler import BackgroundLoop, BackgroundScheduler
from .storage import FileSystemBackend, S3Backend, StorageBackend, create_backend
from .models import Bom, Format, OriginalBom, SpecificationVersion
from .utils import generate_serial_number, parse_cdx_urn, valid_cdx_urn, valid_serial_number, timing_context

from .config import RepoConfig, get_config, load_config, set_config, setup_logging
from .exceptions import (
    BomRepoError,
    BomAlreadyExistsError,
    BomNotFoundError,
    BomFormatError,
    ConfigurationError,
    InvalidIdentifierError,
    InvalidSearchError,
    MediaTypeError,
    MethodNotAllowedError,
    StorageBackendError,
    UnacceptableMediaTypeError,
    UnsupportedMediaTypeError,
)

__version__ = "0.1.0"

__all__ = [
    # Main API Classes
    "BomRepoServer",
    "RepoService",
    "StoreResult",
    "CacheService",
    "BomIdentifier",
    "BomSubset",
    "RetentionService",
    "RetentionReport",
    "BackgroundLoop",
    "BackgroundScheduler",

    # Storage
    "StorageBackend",
    "FileSystemBackend",
    "S3Backend",
    "create_backend",

    # Model
    "Bom",
    "Format",
    "OriginalBom",
    "SpecificationVersion",

    # Configuration
    "RepoConfig",
    "get_config",
    "load_config",
    "set_config",
    "setup_logging",

    # Utilities
    "generate_serial_number",
    "parse_cdx_urn",
    "resolve_identifier",
    "valid_cdx_urn",
    "valid_serial_number",
    "timing_context",

    # Exceptions
    "BomRepoError",
    "BomAlreadyExistsError",
    "BomNotFoundError",
    "BomFormatError",
    "ConfigurationError",
    "InvalidIdentifierError",
    "InvalidSearchError",
    "MediaTypeError",
    "MethodNotAllowedError",
    "StorageBackendError",
    "UnacceptableMediaTypeError",
    "UnsupportedMediaTypeError",
]
