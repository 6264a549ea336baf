"""
Search cache for bomrepo.

This module holds an in-memory projection of every stored BOM, limited to
the fields discovery search needs. The index is rebuilt periodically by a
full mark-and-sweep over the repository; it may lag storage by one
refresh interval and is never authoritative.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from loguru import logger

from .exceptions import InvalidSearchError
from .models import Bom
from .repository import RepoService
from .utils import timing_context


class BomIdentifier(NamedTuple):
    """A (serial number, version) pair."""
    serial_number: str
    version: int


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else None


@dataclass(frozen=True)
class BomSubset:
    """Searchable projection of a BOM; component fields are lowercased."""
    serial_number: str
    version: int
    component_group: Optional[str] = None
    component_name: Optional[str] = None
    component_version: Optional[str] = None

    @classmethod
    def from_bom(cls, bom: Bom) -> "BomSubset":
        component = bom.metadata.component if bom.metadata is not None else None
        if component is None:
            return cls(bom.serial_number, bom.version)
        return cls(
            serial_number=bom.serial_number,
            version=bom.version,
            component_group=_lower(component.group),
            component_name=_lower(component.name),
            component_version=_lower(component.version),
        )

    @property
    def identifier(self) -> BomIdentifier:
        return BomIdentifier(self.serial_number, self.version)


class CacheService:
    """
    Discovery index over the repository.

    The refresh loop is the only writer; searches are readers. Both go
    through one lock and callers only ever receive identifiers.
    """

    def __init__(self, repo: RepoService):
        self.repo = repo
        self._entries: Dict[Tuple[str, int], BomSubset] = {}
        self._lock = threading.Lock()
        self.update_count = 0
        self.search_count = 0
        self.last_updated: Optional[datetime] = None
        self.last_update_seconds: Optional[float] = None

        logger.info("CacheService initialized")

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def _upsert(self, subset: BomSubset) -> None:
        with self._lock:
            self._entries[(subset.serial_number, subset.version)] = subset

    def _remove(self, key: Tuple[str, int]) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def update_cache(self) -> Dict[str, int]:
        """
        Reconcile the index with the repository.

        Every stored BOM is read back and upserted; entries not seen during
        the pass are removed once the pass completes.

        Returns:
            Dict with counts of "indexed" and "removed" entries
        """
        with timing_context("update_cache") as timer:
            with self._lock:
                unseen = set(self._entries)

            indexed = 0
            async for serial_number in self.repo.iter_serial_numbers():
                async for bom in self.repo.retrieve_all(serial_number):
                    key = (serial_number, bom.version)
                    unseen.discard(key)
                    self._upsert(BomSubset.from_bom(bom))
                    indexed += 1

            for key in unseen:
                self._remove(key)

        self.update_count += 1
        self.last_updated = datetime.now(timezone.utc)
        self.last_update_seconds = timer.duration
        logger.info(f"BOM cache updated: {indexed} indexed, {len(unseen)} removed")
        return {"indexed": indexed, "removed": len(unseen)}

    def search(self, group: Optional[str] = None, name: Optional[str] = None,
               version: Optional[str] = None) -> List[BomIdentifier]:
        """
        Find BOMs by their metadata component.

        Filters are case-insensitive exact matches combined with AND; empty
        filters are ignored.

        Args:
            group: Component group
            name: Component name
            version: Component version

        Returns:
            List of matching BomIdentifiers, sorted

        Raises:
            InvalidSearchError: If every filter is empty
        """
        if not group and not name and not version:
            raise InvalidSearchError("At least one of group, name or version is required")

        filters = [
            ("component_group", group.lower() if group else None),
            ("component_name", name.lower() if name else None),
            ("component_version", version.lower() if version else None),
        ]
        filters = [(field, value) for field, value in filters if value is not None]

        with self._lock:
            matches = [
                subset.identifier
                for subset in self._entries.values()
                if all(getattr(subset, field) == value for field, value in filters)
            ]

        self.search_count += 1
        logger.debug(f"Search group={group!r} name={name!r} version={version!r}: {len(matches)} matches")
        return sorted(matches)

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        return {
            "total_entries": self.size,
            "updates": self.update_count,
            "searches": self.search_count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_update_seconds": self.last_update_seconds,
        }
