"""
BOM repository server.

Wires the storage backend, repository, search cache, retention engine and
background scheduler together and exposes the operations an HTTP layer
needs: submit, fetch, fetch original, delete and search.

Example:
    async with BomRepoServer(load_config()) as server:
        result = await server.submit(content, "application/vnd.cyclonedx+json; version=1.4")
        body, media_type = await server.fetch_rendered(
            result.serial_number, result.version, "application/vnd.cyclonedx+xml; version=1.2"
        )
"""

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from .cache import BomIdentifier, CacheService
from .config import RepoConfig, get_config
from .exceptions import BomNotFoundError, InvalidIdentifierError, MethodNotAllowedError
from .formats import decode, encode, negotiate, negotiate_original, parse_content_type
from .models import Bom
from .repository import RepoService, StoreResult
from .retention import RetentionService
from .scheduler import BackgroundScheduler
from .storage import StorageBackend, create_backend
from .utils import parse_cdx_urn, valid_cdx_urn, valid_serial_number


def resolve_identifier(identifier: str, version: Optional[int] = None) -> Tuple[str, Optional[int]]:
    """
    Resolve a serial number or CDX URN to (serial number, version).

    Args:
        identifier: "urn:uuid:...", "{...}" or "urn:cdx:.../<version>"
        version: Explicit version; must agree with a CDX URN's version

    Returns:
        Tuple of (serial_number, version or None)

    Raises:
        InvalidIdentifierError: If the identifier is malformed
    """
    if valid_cdx_urn(identifier):
        serial_number, urn_version = parse_cdx_urn(identifier)
        if version is not None and version != urn_version:
            raise InvalidIdentifierError(
                f"Version {version} conflicts with the CDX URN version {urn_version}", identifier=identifier
            )
        return serial_number, urn_version
    if not valid_serial_number(identifier):
        raise InvalidIdentifierError("Invalid serial number", identifier=identifier)
    if version is not None and version < 1:
        raise InvalidIdentifierError("BOM version must be a positive integer", identifier=str(version))
    return identifier, version


class BomRepoServer:
    """
    BOM repository server.

    The storage engine is selected once from config.storage_type. start()
    initializes the backend and starts the cache and retention loops;
    stop() signals both loops and waits up to shutdown_grace_seconds.
    """

    def __init__(self, config: Optional[RepoConfig] = None, backend: Optional[StorageBackend] = None):
        """
        Initialize the server.

        Args:
            config: Configuration (defaults to the global config)
            backend: Storage backend (defaults to the one config selects)
        """
        self.config = config or get_config()
        self.backend = backend or create_backend(self.config)
        self.repo = RepoService(self.backend)
        self.cache = CacheService(self.repo)
        self.retention = RetentionService(
            self.repo,
            max_bom_versions=self.config.max_bom_versions,
            max_bom_age_days=self.config.max_bom_age_days,
        )
        self.scheduler = BackgroundScheduler(
            self.cache,
            self.retention,
            cache_interval_seconds=self.config.cache_refresh_seconds,
            retention_interval_seconds=self.config.retention_interval_seconds,
        )
        self.started = False

        logger.info(f"BomRepoServer initialized with {self.backend.name} storage")

    async def start(self, background: bool = True) -> None:
        """
        Initialize storage and start the background loops.

        Args:
            background: Start the cache and retention loops
        """
        metadata = await self.repo.initialize()
        logger.info(f"Storage ready (internal storage version {metadata.internal_storage_version})")
        if background:
            self.scheduler.start()
        self.started = True

    async def stop(self) -> None:
        await self.scheduler.stop(self.config.shutdown_grace_seconds)
        self.started = False
        logger.info("BomRepoServer stopped")

    async def __aenter__(self) -> "BomRepoServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def _require(self, method: str) -> None:
        if not getattr(self.config, f"allow_{method}"):
            raise MethodNotAllowedError(f"{method.upper()} is disabled", method=method.upper())

    async def submit(self, content: bytes, content_type: str) -> StoreResult:
        """
        Store a submitted BOM and preserve its original bytes.

        The specification version recorded for the original comes from the
        content type's version parameter, or from the document itself.

        Args:
            content: Request body
            content_type: Content-Type header

        Returns:
            StoreResult; conflict is set if the BOM's version already exists

        Raises:
            MethodNotAllowedError: If POST is disabled
            UnsupportedMediaTypeError: If the content type is not a BOM format
            BomFormatError: If the body cannot be decoded
            InvalidIdentifierError: If the BOM's serial number is malformed
        """
        self._require("post")
        fmt, spec_version = parse_content_type(content_type)
        bom, declared_version = decode(content, fmt)

        result = await self.repo.store(bom)
        if result.conflict:
            return result

        await self.repo.store_original(
            result.serial_number, result.version, content, fmt, spec_version or declared_version
        )
        logger.info(f"Accepted {result.serial_number} version {result.version} as {fmt.value}")
        return result

    async def fetch(self, identifier: str, version: Optional[int] = None) -> Bom:
        """
        Fetch a stored BOM.

        Args:
            identifier: Serial number or CDX URN
            version: Version to fetch; the latest if omitted

        Raises:
            BomNotFoundError: If the BOM does not exist
        """
        self._require("get")
        serial_number, version = resolve_identifier(identifier, version)
        bom = await self.repo.retrieve(serial_number, version)
        if bom is None:
            raise BomNotFoundError("BOM not found", serial_number=serial_number, version=version)
        return bom

    def render(self, bom: Bom, accept: Optional[str]) -> Tuple[bytes, str]:
        """Encode a BOM for the best entry of an Accept header; returns (body, media type)."""
        fmt, spec_version, media_type = negotiate(accept)
        return encode(bom, fmt, spec_version), media_type

    async def fetch_rendered(self, identifier: str, version: Optional[int], accept: Optional[str]) -> Tuple[bytes, str]:
        """Fetch a BOM and encode it for an Accept header."""
        # fail on an unacceptable Accept before touching storage
        negotiate(accept)
        bom = await self.fetch(identifier, version)
        return self.render(bom, accept)

    async def fetch_original(self, identifier: str, version: Optional[int], accept: Optional[str]) -> Tuple[bytes, str]:
        """
        Fetch the bytes a BOM was originally submitted as.

        Raises:
            InvalidIdentifierError: If no version is given
            BomNotFoundError: If no original exists
            UnacceptableMediaTypeError: If accept does not match the original
        """
        self._require("get")
        serial_number, version = resolve_identifier(identifier, version)
        if version is None:
            raise InvalidIdentifierError("A version is required to fetch the original BOM", identifier=identifier)

        original = await self.repo.retrieve_original(serial_number, version)
        if original is None:
            raise BomNotFoundError("Original BOM not found", serial_number=serial_number, version=version)
        return original.content, negotiate_original(accept, original)

    async def delete(self, identifier: str, version: Optional[int] = None) -> None:
        """Delete one version, or every version when version is omitted."""
        self._require("delete")
        serial_number, version = resolve_identifier(identifier, version)
        if version is None:
            await self.repo.delete_all(serial_number)
        else:
            await self.repo.delete(serial_number, version)

    def search(self, group: Optional[str] = None, name: Optional[str] = None,
               version: Optional[str] = None) -> List[BomIdentifier]:
        self._require("get")
        return self.cache.search(group=group, name=name, version=version)

    def get_system_health(self) -> Dict[str, Any]:
        """
        Get server health information.

        Returns:
            Dictionary with storage, cache and background loop status
        """
        metadata = self.backend.metadata
        return {
            "started": self.started,
            "storage_type": self.config.storage_type,
            "internal_storage_version": metadata.internal_storage_version if metadata else None,
            "cache": self.cache.get_cache_stats(),
            "loops": {
                loop.name: {
                    "running": loop.is_running,
                    "iterations": loop.iterations,
                    "failures": loop.failures,
                }
                for loop in self.scheduler.loops
            },
        }
