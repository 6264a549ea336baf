"""
Retention engine.

Prunes stored versions per serial number. The count rule runs first and
deletes the oldest versions until at most max_bom_versions remain; the
age rule then deletes every version created before now - max_bom_age_days.
A value of 0 disables a rule.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List

from loguru import logger

from .cache import BomIdentifier
from .repository import RepoService
from .utils import timing_context

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RetentionReport:
    """Versions deleted by one retention pass."""
    serial_numbers_checked: int = 0
    deleted_by_count: List[BomIdentifier] = field(default_factory=list)
    deleted_by_age: List[BomIdentifier] = field(default_factory=list)

    @property
    def deleted(self) -> List[BomIdentifier]:
        return self.deleted_by_count + self.deleted_by_age


class RetentionService:
    """Applies the max-versions and max-age rules to every serial number."""

    def __init__(self, repo: RepoService, max_bom_versions: int = 0, max_bom_age_days: int = 0,
                 clock: Clock = utc_now):
        self.repo = repo
        self.max_bom_versions = max_bom_versions
        self.max_bom_age_days = max_bom_age_days
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return self.max_bom_versions > 0 or self.max_bom_age_days > 0

    async def process_retention(self) -> RetentionReport:
        """
        Run one retention pass across all serial numbers.

        Deletions are not grouped: an interrupted pass leaves some lineages
        partially pruned and the next pass continues from there.

        Returns:
            RetentionReport listing the deleted versions
        """
        report = RetentionReport()
        if not self.enabled:
            logger.debug("Retention disabled, nothing to do")
            return report

        with timing_context("process_retention"):
            async for serial_number in self.repo.iter_serial_numbers():
                report.serial_numbers_checked += 1
                report.deleted_by_count.extend(await self._apply_max_versions(serial_number))
                report.deleted_by_age.extend(await self._apply_max_age(serial_number))

        logger.info(f"Retention pass checked {report.serial_numbers_checked} serial numbers, "
                    f"deleted {len(report.deleted_by_count)} by count and "
                    f"{len(report.deleted_by_age)} by age")
        return report

    async def _apply_max_versions(self, serial_number: str) -> List[BomIdentifier]:
        if self.max_bom_versions <= 0:
            return []

        deleted = []
        versions = await self.repo.list_versions(serial_number)
        while len(versions) > self.max_bom_versions:
            version = versions.pop(0)
            await self.repo.delete(serial_number, version)
            deleted.append(BomIdentifier(serial_number, version))
            logger.debug(f"Retention deleted {serial_number} version {version} (max versions)")
        return deleted

    async def _apply_max_age(self, serial_number: str) -> List[BomIdentifier]:
        if self.max_bom_age_days <= 0:
            return []

        cutoff = self.clock() - timedelta(days=self.max_bom_age_days)
        deleted = []
        for version in await self.repo.list_versions(serial_number):
            created = await self.repo.get_age(serial_number, version)
            if created is None:
                # deleted since it was listed
                logger.debug(f"Retention skipped {serial_number} version {version}, already gone")
                continue
            if created < cutoff:
                await self.repo.delete(serial_number, version)
                deleted.append(BomIdentifier(serial_number, version))
                logger.debug(f"Retention deleted {serial_number} version {version} (older than {cutoff})")
        return deleted
