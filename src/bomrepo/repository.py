"""
Repository service for bomrepo.

This module wraps a storage backend with document-level policy: serial
number generation, version allocation, latest-version resolution and
canonical encoding. Stores report a conflict through StoreResult rather
than raising, so callers read an ordinary business outcome without
exception handling.
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, List, Optional

from loguru import logger

from .exceptions import BomAlreadyExistsError, InvalidIdentifierError
from .formats import decode_canonical, encode_canonical
from .models import Bom, Format, OriginalBom, SpecificationVersion
from .storage.base import StorageBackend
from .utils import generate_serial_number, timing_context, valid_serial_number


@dataclass(frozen=True)
class StoreResult:
    """
    Outcome of a store.

    Attributes:
        bom: The BOM with its serial number and version assigned
        conflict: True if the (serial number, version) pair already existed
            and nothing was written
    """
    bom: Bom
    conflict: bool = False

    @property
    def stored(self) -> bool:
        return not self.conflict

    @property
    def serial_number(self) -> str:
        return self.bom.serial_number

    @property
    def version(self) -> int:
        return self.bom.version


class RepoService:
    """
    Document-level API over a storage backend.

    Version allocation reads the current versions and picks max + 1, or 1
    for a new serial number. Nothing coordinates concurrent writers to the
    same serial number; the backend's create-only write is the only guard.
    """

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        logger.info(f"RepoService initialized with {backend.name} backend")

    async def initialize(self):
        """Bootstrap the backend. Call once before serving traffic."""
        return await self.backend.initialize()

    async def get_latest_version(self, serial_number: str) -> Optional[int]:
        versions = await self.backend.list_versions(serial_number)
        return versions[-1] if versions else None

    async def get_next_version_number(self, serial_number: str) -> int:
        """Get the version a new store for serial_number would be assigned."""
        latest = await self.get_latest_version(serial_number)
        return latest + 1 if latest is not None else 1

    async def _prepare(self, bom: Bom) -> Bom:
        bom = copy.copy(bom)
        if not bom.serial_number:
            bom.serial_number = generate_serial_number()
        elif not valid_serial_number(bom.serial_number):
            raise InvalidIdentifierError("Invalid BOM serial number", identifier=bom.serial_number)

        if bom.version is None:
            bom.version = await self.get_next_version_number(bom.serial_number)
        elif bom.version < 1:
            raise InvalidIdentifierError("BOM version must be a positive integer", identifier=str(bom.version))

        bom.spec_version = SpecificationVersion.latest()
        return bom

    async def store(self, bom: Bom) -> StoreResult:
        """
        Store a BOM in canonical form.

        A missing serial number is generated and a missing version is
        allocated as max(existing) + 1. The input BOM is not modified.

        Args:
            bom: BOM to store

        Returns:
            StoreResult carrying the BOM with its assigned identity;
            conflict is set if that version already exists

        Raises:
            InvalidIdentifierError: If the serial number or version is malformed
        """
        bom = await self._prepare(bom)
        with timing_context(f"store({bom.serial_number}, {bom.version})"):
            content = encode_canonical(bom)
            try:
                await self.backend.store(bom.serial_number, bom.version, content)
            except BomAlreadyExistsError:
                logger.warning(f"Version {bom.version} of {bom.serial_number} already exists")
                return StoreResult(bom=bom, conflict=True)
        return StoreResult(bom=bom)

    async def store_or_raise(self, bom: Bom) -> Bom:
        """
        Store a BOM, raising on conflict.

        Raises:
            BomAlreadyExistsError: If the version already exists
        """
        result = await self.store(bom)
        if result.conflict:
            raise BomAlreadyExistsError(
                "BOM version already exists",
                serial_number=result.serial_number,
                version=result.version,
            )
        return result.bom

    async def retrieve(self, serial_number: str, version: Optional[int] = None) -> Optional[Bom]:
        """
        Retrieve a BOM.

        Args:
            serial_number: BOM serial number
            version: Version to fetch; the latest if omitted

        Returns:
            The BOM, or None if the serial number or version does not exist
        """
        if version is None:
            version = await self.get_latest_version(serial_number)
            if version is None:
                return None
        content = await self.backend.retrieve(serial_number, version)
        if content is None:
            return None
        return decode_canonical(content)

    async def retrieve_all(self, serial_number: str) -> AsyncIterator[Bom]:
        """Yield every version of a BOM in ascending version order."""
        for version in await self.backend.list_versions(serial_number):
            bom = await self.retrieve(serial_number, version)
            # deleted between listing and reading
            if bom is not None:
                yield bom

    async def store_original(self, serial_number: str, version: int, content: bytes,
                             format: Format, spec_version: SpecificationVersion) -> bool:
        """
        Preserve the submitted bytes of a BOM.

        Returns:
            bool: False if an original with the same format and version exists
        """
        try:
            await self.backend.store_original(serial_number, version, content, format, spec_version)
        except BomAlreadyExistsError:
            logger.warning(f"Original of {serial_number} version {version} already exists")
            return False
        return True

    async def retrieve_original(self, serial_number: str, version: int) -> Optional[OriginalBom]:
        return await self.backend.retrieve_original(serial_number, version)

    async def list_versions(self, serial_number: str) -> List[int]:
        return await self.backend.list_versions(serial_number)

    def iter_serial_numbers(self) -> AsyncIterator[str]:
        return self.backend.iter_serial_numbers()

    async def get_age(self, serial_number: str, version: int) -> Optional[datetime]:
        return await self.backend.get_age(serial_number, version)

    async def delete(self, serial_number: str, version: int) -> None:
        await self.backend.delete(serial_number, version)

    async def delete_all(self, serial_number: str) -> None:
        await self.backend.delete_all(serial_number)
