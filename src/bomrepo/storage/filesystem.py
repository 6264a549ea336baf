"""
Local filesystem storage engine.

Canonical and original documents are written with exclusive create
(``open(path, "xb")``), so two writers can never both claim the same
version. Blocking calls run in worker threads.
"""

import asyncio
import json
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

from loguru import logger

from ..exceptions import BomAlreadyExistsError
from ..models import Format, OriginalBom, SpecificationVersion, StorageMetadata
from ..utils import format_file_size, parse_version_segment, timing_context
from .base import (
    CANONICAL_FILENAME,
    INTERNAL_STORAGE_VERSION,
    METADATA_KEY,
    StorageBackend,
    base_segment,
    original_filename,
    parse_original_filename,
    serial_number_from_segment,
    serial_number_segment,
)


def _write_exclusive(path: Path, content: bytes) -> bool:
    """
    Create a file and write content to it.

    Returns False if the file already exists. A failed write removes the
    partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        handle = open(path, "xb")
    except FileExistsError:
        return False
    try:
        with handle:
            handle.write(content)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return True


def _read_if_exists(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _creation_time(path: Path) -> Optional[datetime]:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    timestamp = getattr(stat, "st_birthtime", None)
    if timestamp is None:
        timestamp = stat.st_ctime
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class FileSystemBackend(StorageBackend):
    """Storage engine rooted at a local directory."""

    name = "filesystem"

    def __init__(self, directory: Union[str, Path]):
        super().__init__()
        self.directory = Path(directory)

    def _base_directory(self) -> Path:
        return self.directory / base_segment()

    def _serial_directory(self, serial_number: str) -> Path:
        return self._base_directory() / serial_number_segment(serial_number)

    def _version_directory(self, serial_number: str, version: int) -> Path:
        return self._serial_directory(serial_number) / str(version)

    def _canonical_path(self, serial_number: str, version: int) -> Path:
        return self._version_directory(serial_number, version) / CANONICAL_FILENAME

    def _initialize_sync(self) -> StorageMetadata:
        self.directory.mkdir(parents=True, exist_ok=True)
        metadata_path = self.directory / METADATA_KEY

        metadata = StorageMetadata(internal_storage_version=INTERNAL_STORAGE_VERSION)
        payload = json.dumps(metadata.to_json_dict(), indent=2).encode("utf-8")
        if _write_exclusive(metadata_path, payload):
            logger.info(f"Created storage metadata at {metadata_path}")
            return metadata

        metadata = StorageMetadata.from_json_dict(json.loads(metadata_path.read_text(encoding="utf-8")))
        logger.info(f"Loaded storage metadata from {metadata_path}: "
                    f"internal storage version {metadata.internal_storage_version}")
        return metadata

    async def initialize(self) -> StorageMetadata:
        with timing_context(f"filesystem.initialize(directory={self.directory})"):
            self.metadata = await asyncio.to_thread(self._initialize_sync)
        return self.metadata

    async def store(self, serial_number: str, version: int, content: bytes) -> None:
        path = self._canonical_path(serial_number, version)
        with timing_context(f"filesystem.store({serial_number}, {version})"):
            created = await asyncio.to_thread(_write_exclusive, path, content)
        if not created:
            raise BomAlreadyExistsError(
                "BOM version already exists",
                serial_number=serial_number,
                version=version,
            )
        logger.info(f"Stored {serial_number} version {version} ({format_file_size(len(content))})")

    async def retrieve(self, serial_number: str, version: int) -> Optional[bytes]:
        return await asyncio.to_thread(_read_if_exists, self._canonical_path(serial_number, version))

    def _list_versions_sync(self, serial_number: str) -> List[int]:
        directory = self._serial_directory(serial_number)
        if not directory.is_dir():
            return []
        versions = []
        for entry in os.scandir(directory):
            if not entry.is_dir():
                continue
            version = parse_version_segment(entry.name)
            if version is not None:
                versions.append(version)
        return sorted(versions)

    async def list_versions(self, serial_number: str) -> List[int]:
        return await asyncio.to_thread(self._list_versions_sync, serial_number)

    def _list_serial_segments_sync(self) -> List[str]:
        directory = self._base_directory()
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in os.scandir(directory) if entry.is_dir())

    async def iter_serial_numbers(self) -> AsyncIterator[str]:
        segments = await asyncio.to_thread(self._list_serial_segments_sync)
        for segment in segments:
            serial_number = serial_number_from_segment(segment)
            if serial_number is None:
                logger.debug(f"Skipping foreign directory {segment}")
                continue
            yield serial_number

    @staticmethod
    def _remove_tree(directory: Path) -> bool:
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        return True

    async def delete(self, serial_number: str, version: int) -> None:
        directory = self._version_directory(serial_number, version)
        if await asyncio.to_thread(self._remove_tree, directory):
            logger.info(f"Deleted {serial_number} version {version}")

    async def delete_all(self, serial_number: str) -> None:
        directory = self._serial_directory(serial_number)
        if await asyncio.to_thread(self._remove_tree, directory):
            logger.info(f"Deleted all versions of {serial_number}")

    async def get_age(self, serial_number: str, version: int) -> Optional[datetime]:
        return await asyncio.to_thread(_creation_time, self._canonical_path(serial_number, version))

    async def store_original(self, serial_number: str, version: int, content: bytes,
                             format: Format, spec_version: SpecificationVersion) -> None:
        path = self._version_directory(serial_number, version) / original_filename(format, spec_version)
        with timing_context(f"filesystem.store_original({serial_number}, {version}, {path.name})"):
            created = await asyncio.to_thread(_write_exclusive, path, content)
        if not created:
            raise BomAlreadyExistsError(
                "Original BOM already exists",
                serial_number=serial_number,
                version=version,
                details={"format": format.value, "spec_version": spec_version.value},
            )

    def _retrieve_original_sync(self, serial_number: str, version: int) -> Optional[OriginalBom]:
        directory = self._version_directory(serial_number, version)
        if not directory.is_dir():
            return None
        for name in sorted(os.listdir(directory)):
            parsed = parse_original_filename(name)
            if parsed is None:
                continue
            content = _read_if_exists(directory / name)
            if content is None:
                continue
            fmt, spec_version = parsed
            return OriginalBom(format=fmt, specification_version=spec_version, content=content)
        return None

    async def retrieve_original(self, serial_number: str, version: int) -> Optional[OriginalBom]:
        return await asyncio.to_thread(self._retrieve_original_sync, serial_number, version)
