"""Tests for the console scripts."""

import asyncio
import json
import sys

import pytest
from loguru import logger

from bomrepo import cli
from bomrepo.repository import RepoService
from bomrepo.storage import FileSystemBackend

from conftest import SERIAL_NUMBER, make_bom


@pytest.fixture
def directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    yield tmp_path / "repo"
    # the commands install their own sinks through set_config
    logger.remove()
    logger.add(sys.stderr)


def _seed(directory, count: int) -> None:
    async def seed():
        repo = RepoService(FileSystemBackend(directory))
        await repo.initialize()
        for _ in range(count):
            await repo.store(make_bom(serial_number=SERIAL_NUMBER))

    asyncio.run(seed())


class TestInitStorage:
    def test_creates_metadata(self, directory, capsys):
        cli.init_storage(["--directory", str(directory)])

        assert (directory / "storage-metadata").exists()
        assert "internal storage version 1" in capsys.readouterr().out


class TestRunRetention:
    def test_max_versions(self, directory, capsys):
        _seed(directory, 4)

        cli.run_retention(["--directory", str(directory), "--max-versions", "1", "--json"])

        report = json.loads(capsys.readouterr().out)
        assert report["serial_numbers_checked"] == 1
        assert report["deleted_by_count"] == [[SERIAL_NUMBER, 1], [SERIAL_NUMBER, 2], [SERIAL_NUMBER, 3]]
        assert report["deleted_by_age"] == []


class TestSearch:
    def test_finds_matches(self, directory, capsys):
        _seed(directory, 2)

        cli.search(["--directory", str(directory), "--name", "ACME-APP", "--json"])

        assert json.loads(capsys.readouterr().out) == [
            {"serial_number": SERIAL_NUMBER, "version": 1},
            {"serial_number": SERIAL_NUMBER, "version": 2},
        ]

    def test_requires_a_filter(self, directory):
        with pytest.raises(SystemExit) as exc_info:
            cli.search(["--directory", str(directory)])
        assert exc_info.value.code == 2

    def test_failure_exits_with_status_one(self, directory):
        with pytest.raises(SystemExit) as exc_info:
            cli.search(["--config", "missing.env", "--name", "x"])
        assert exc_info.value.code == 1
