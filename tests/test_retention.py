"""Tests for the retention engine."""

from datetime import datetime, timedelta, timezone

import pytest

from bomrepo.cache import BomIdentifier
from bomrepo.repository import RepoService
from bomrepo.retention import RetentionService

from conftest import OTHER_SERIAL_NUMBER, SERIAL_NUMBER, make_bom

NOW = datetime(2022, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _key(serial_number: str, version: int) -> str:
    return f"v1/{serial_number.replace(':', '_')}/{version}/bom.cdx"


@pytest.fixture
async def s3_repo(s3_backend) -> RepoService:
    repo = RepoService(s3_backend)
    await repo.initialize()
    return repo


async def _store_versions(repo: RepoService, serial_number: str, count: int) -> None:
    for _ in range(count):
        await repo.store(make_bom(serial_number=serial_number))


def _set_age(s3_client, serial_number: str, version: int, days_old: float) -> None:
    s3_client.objects[_key(serial_number, version)]["LastModified"] = NOW - timedelta(days=days_old)


class TestMaxVersions:
    """The count rule."""

    async def test_keeps_newest_versions(self, repo):
        await _store_versions(repo, SERIAL_NUMBER, 5)
        await _store_versions(repo, OTHER_SERIAL_NUMBER, 2)

        report = await RetentionService(repo, max_bom_versions=2).process_retention()

        assert await repo.list_versions(SERIAL_NUMBER) == [4, 5]
        assert await repo.list_versions(OTHER_SERIAL_NUMBER) == [1, 2]
        assert report.deleted_by_count == [
            BomIdentifier(SERIAL_NUMBER, 1),
            BomIdentifier(SERIAL_NUMBER, 2),
            BomIdentifier(SERIAL_NUMBER, 3),
        ]
        assert report.serial_numbers_checked == 2

    async def test_gaps_in_versions(self, repo):
        for version in (2, 7, 9):
            await repo.store(make_bom(serial_number=SERIAL_NUMBER, version=version))

        await RetentionService(repo, max_bom_versions=1).process_retention()

        assert await repo.list_versions(SERIAL_NUMBER) == [9]


class TestMaxAge:
    """The age rule."""

    async def test_deletes_versions_older_than_cutoff(self, s3_client, s3_repo):
        await _store_versions(s3_repo, SERIAL_NUMBER, 3)
        _set_age(s3_client, SERIAL_NUMBER, 1, days_old=40)
        _set_age(s3_client, SERIAL_NUMBER, 2, days_old=31)
        _set_age(s3_client, SERIAL_NUMBER, 3, days_old=1)

        service = RetentionService(s3_repo, max_bom_age_days=30, clock=lambda: NOW)
        report = await service.process_retention()

        assert await s3_repo.list_versions(SERIAL_NUMBER) == [3]
        assert report.deleted_by_age == [BomIdentifier(SERIAL_NUMBER, 1), BomIdentifier(SERIAL_NUMBER, 2)]

    async def test_age_rule_can_remove_every_version(self, s3_client, s3_repo):
        await _store_versions(s3_repo, SERIAL_NUMBER, 2)
        _set_age(s3_client, SERIAL_NUMBER, 1, days_old=100)
        _set_age(s3_client, SERIAL_NUMBER, 2, days_old=100)

        await RetentionService(s3_repo, max_bom_age_days=30, clock=lambda: NOW).process_retention()

        assert await s3_repo.list_versions(SERIAL_NUMBER) == []

    async def test_version_deleted_mid_pass_does_not_stop_the_sweep(self, s3_client, s3_repo, monkeypatch):
        await _store_versions(s3_repo, SERIAL_NUMBER, 2)
        await _store_versions(s3_repo, OTHER_SERIAL_NUMBER, 1)
        for serial_number, version in ((SERIAL_NUMBER, 1), (SERIAL_NUMBER, 2), (OTHER_SERIAL_NUMBER, 1)):
            _set_age(s3_client, serial_number, version, days_old=60)

        get_age = s3_repo.get_age

        async def get_age_after_concurrent_delete(serial_number, version):
            if (serial_number, version) == (SERIAL_NUMBER, 1):
                await s3_repo.backend.delete(serial_number, version)
            return await get_age(serial_number, version)

        monkeypatch.setattr(s3_repo, "get_age", get_age_after_concurrent_delete)

        report = await RetentionService(s3_repo, max_bom_age_days=30, clock=lambda: NOW).process_retention()

        assert report.serial_numbers_checked == 2
        assert sorted(report.deleted_by_age) == sorted([
            BomIdentifier(SERIAL_NUMBER, 2),
            BomIdentifier(OTHER_SERIAL_NUMBER, 1),
        ])
        assert await s3_repo.list_versions(SERIAL_NUMBER) == []
        assert await s3_repo.list_versions(OTHER_SERIAL_NUMBER) == []

    async def test_filesystem_ages_against_clock(self, repo):
        await _store_versions(repo, SERIAL_NUMBER, 2)
        later = datetime.now(timezone.utc) + timedelta(days=10)

        await RetentionService(repo, max_bom_age_days=5, clock=lambda: later).process_retention()

        assert await repo.list_versions(SERIAL_NUMBER) == []


class TestCombinedRules:
    async def test_count_rule_runs_before_age_rule(self, s3_client, s3_repo):
        await _store_versions(s3_repo, SERIAL_NUMBER, 4)
        for version in (1, 2, 3):
            _set_age(s3_client, SERIAL_NUMBER, version, days_old=60)
        _set_age(s3_client, SERIAL_NUMBER, 4, days_old=1)

        service = RetentionService(s3_repo, max_bom_versions=2, max_bom_age_days=30, clock=lambda: NOW)
        report = await service.process_retention()

        assert report.deleted_by_count == [BomIdentifier(SERIAL_NUMBER, 1), BomIdentifier(SERIAL_NUMBER, 2)]
        assert report.deleted_by_age == [BomIdentifier(SERIAL_NUMBER, 3)]
        assert await s3_repo.list_versions(SERIAL_NUMBER) == [4]

    async def test_disabled_by_default(self, repo):
        await _store_versions(repo, SERIAL_NUMBER, 3)
        service = RetentionService(repo)

        report = await service.process_retention()

        assert not service.enabled
        assert report.deleted == []
        assert await repo.list_versions(SERIAL_NUMBER) == [1, 2, 3]
