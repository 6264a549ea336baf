"""
Storage backend interface.

Both engines share one logical key layout::

    storage-metadata
    v{internal_storage_version}/{escaped serial number}/{version}/bom.cdx
    v{internal_storage_version}/{escaped serial number}/{version}/bom.{schema version}.{format}

The first form is the canonical document, the second a preserved original
submission. Every write is create-only.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, List, Optional, Tuple

from ..models import Format, OriginalBom, SpecificationVersion, StorageMetadata
from ..utils import escape_serial_number, unescape_serial_number, valid_serial_number

# Bumped whenever the physical layout changes
INTERNAL_STORAGE_VERSION = 1

METADATA_KEY = "storage-metadata"
CANONICAL_FILENAME = "bom.cdx"
ORIGINAL_FILENAME_PREFIX = "bom."


def base_segment() -> str:
    return f"v{INTERNAL_STORAGE_VERSION}"


def serial_number_segment(serial_number: str) -> str:
    return escape_serial_number(serial_number)


def serial_number_from_segment(segment: str) -> Optional[str]:
    """Recover a serial number from a key segment, or None for foreign entries."""
    serial_number = unescape_serial_number(segment)
    return serial_number if valid_serial_number(serial_number) else None


def original_filename(format: Format, spec_version: SpecificationVersion) -> str:
    """Name of an original document, e.g. "bom.v1_2.xml"."""
    return f"{ORIGINAL_FILENAME_PREFIX}{spec_version.key_name}.{format.value}"


def parse_original_filename(filename: str) -> Optional[Tuple[Format, SpecificationVersion]]:
    """
    Parse the format and specification version out of an original's name.

    The version sits between the first and the last dot, the format after
    the last dot.

    Args:
        filename: Base name of a file or the last segment of a key

    Returns:
        Tuple of (Format, SpecificationVersion), or None if the name is the
        canonical document or does not parse
    """
    if filename == CANONICAL_FILENAME or not filename.startswith(ORIGINAL_FILENAME_PREFIX):
        return None
    first = filename.find(".")
    last = filename.rfind(".")
    if first == last:
        return None
    fmt = Format.parse(filename[last + 1:])
    spec_version = SpecificationVersion.parse(filename[first + 1:last])
    if fmt is None or spec_version is None:
        return None
    return fmt, spec_version


class StorageBackend(ABC):
    """
    Abstract base class for storage engines.

    Every operation is a coroutine. Absence is reported as None or an empty
    list; BomAlreadyExistsError is the only error an engine produces itself,
    everything else from the medium propagates unmodified.
    """

    name = "abstract"

    def __init__(self):
        self.metadata: Optional[StorageMetadata] = None

    @abstractmethod
    async def initialize(self) -> StorageMetadata:
        """Create the root container if needed, then read or write the metadata record."""
        pass

    @abstractmethod
    async def store(self, serial_number: str, version: int, content: bytes) -> None:
        """Write the canonical document; raises BomAlreadyExistsError if present."""
        pass

    @abstractmethod
    async def retrieve(self, serial_number: str, version: int) -> Optional[bytes]:
        """Read the canonical document."""
        pass

    @abstractmethod
    async def list_versions(self, serial_number: str) -> List[int]:
        """All versions of a serial number, ascending."""
        pass

    @abstractmethod
    def iter_serial_numbers(self) -> AsyncIterator[str]:
        """Stream every stored serial number."""
        pass

    @abstractmethod
    async def delete(self, serial_number: str, version: int) -> None:
        """Remove every key under one version."""
        pass

    @abstractmethod
    async def delete_all(self, serial_number: str) -> None:
        """Remove every key under one serial number."""
        pass

    @abstractmethod
    async def get_age(self, serial_number: str, version: int) -> Optional[datetime]:
        """Creation or last-modified time of the canonical document, timezone-aware UTC; None if absent."""
        pass

    @abstractmethod
    async def store_original(self, serial_number: str, version: int, content: bytes,
                             format: Format, spec_version: SpecificationVersion) -> None:
        """Preserve submitted bytes; raises BomAlreadyExistsError if present."""
        pass

    @abstractmethod
    async def retrieve_original(self, serial_number: str, version: int) -> Optional[OriginalBom]:
        """Find the preserved original by scanning the version's sibling keys."""
        pass
