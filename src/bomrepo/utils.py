"""
Utility functions for the bomrepo library.

This module contains identifier helpers, storage key escaping and the
timing context used to log operation durations.
"""

import re
import time
import uuid
from typing import Optional, Tuple, TypeVar, List, Sequence

from loguru import logger

from .exceptions import InvalidIdentifierError

T = TypeVar('T')

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

SERIAL_NUMBER_REGEX = re.compile(rf"^(urn:uuid:{_UUID}|\{{{_UUID}\}})$")

CDX_URN_REGEX = re.compile(rf"^urn:cdx:(?P<serial_number>{_UUID})/(?P<version>[1-9]\d*)$")

# Only ":" can appear in a serial number and is invalid in a path segment
_KEY_ESCAPES = ((":", "_"),)


def generate_serial_number() -> str:
    """
    Generate a new BOM serial number.

    Returns:
        str: A UUID URN, e.g. "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79"
    """
    return f"urn:uuid:{uuid.uuid4()}"


def valid_serial_number(serial_number: Optional[str]) -> bool:
    """
    Validate BOM serial number format.

    Accepts "urn:uuid:<uuid>" and "{<uuid>}" with lower case hex digits.

    Args:
        serial_number: Serial number to validate

    Returns:
        bool: True if valid
    """
    if not serial_number or not isinstance(serial_number, str):
        return False
    return SERIAL_NUMBER_REGEX.match(serial_number) is not None


def valid_cdx_urn(cdx_urn: Optional[str]) -> bool:
    """Check whether a string is a CDX URN ("urn:cdx:<uuid>/<version>")."""
    if not cdx_urn or not isinstance(cdx_urn, str):
        return False
    return CDX_URN_REGEX.match(cdx_urn) is not None


def parse_cdx_urn(cdx_urn: str) -> Tuple[str, int]:
    """
    Parse a CDX URN into a serial number and version.

    Args:
        cdx_urn: CDX URN, e.g. "urn:cdx:3e671687-395b-41f5-a30f-a58921a69b79/2"

    Returns:
        Tuple of ("urn:uuid:<uuid>", version)

    Raises:
        InvalidIdentifierError: If the URN is malformed
    """
    match = CDX_URN_REGEX.match(cdx_urn or "")
    if match is None:
        raise InvalidIdentifierError("Invalid CDX URN", identifier=cdx_urn)
    return f"urn:uuid:{match.group('serial_number')}", int(match.group("version"))


def escape_serial_number(serial_number: str) -> str:
    """Escape a serial number for use as a path segment or key segment."""
    for old, new in _KEY_ESCAPES:
        serial_number = serial_number.replace(old, new)
    return serial_number


def unescape_serial_number(segment: str) -> str:
    """Reverse escape_serial_number()."""
    for old, new in _KEY_ESCAPES:
        segment = segment.replace(new, old)
    return segment


def parse_version_segment(segment: str) -> Optional[int]:
    """
    Parse a version directory/key segment.

    Args:
        segment: Path or key segment, e.g. "3"

    Returns:
        int version, or None if the segment is not a positive integer
    """
    if not segment.isdigit():
        return None
    version = int(segment)
    return version if version > 0 else None


def timing_context(operation_name: str) -> 'TimingContext':
    """
    Create a timing context manager for performance measurement.

    Args:
        operation_name: Name of the operation being timed

    Returns:
        TimingContext: Context manager for timing
    """
    return TimingContext(operation_name)


class TimingContext:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.monotonic()
        logger.debug(f"Starting operation: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.monotonic()
        duration = self.end_time - self.start_time

        if exc_type is None:
            logger.debug(f"Operation '{self.operation_name}' completed in {duration:.3f}s")
        else:
            logger.error(f"Operation '{self.operation_name}' failed after {duration:.3f}s: {exc_val!r}")

    @property
    def duration(self) -> Optional[float]:
        """Get the duration of the operation."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None


def chunk_list(lst: Sequence[T], chunk_size: int) -> List[Sequence[T]]:
    """
    Split a list into chunks of specified size.

    Args:
        lst: List to chunk
        chunk_size: Size of each chunk

    Returns:
        list: List of chunks
    """
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        str: Formatted size (e.g., "1.5 MB")
    """
    if size_bytes == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.1f} {units[unit_index]}"
