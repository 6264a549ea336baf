#!/usr/bin/env python3
"""
bomrepo CLI commands

Provides command-line utilities for storage bootstrap, one-off retention
passes and search. These are exposed as console scripts via pyproject.toml.
"""

import argparse
import asyncio
import json
import sys
from typing import Dict, List, Optional

from loguru import logger

from .config import RepoConfig, load_config, set_config
from .repository import RepoService
from .retention import RetentionReport, RetentionService
from .cache import BomIdentifier, CacheService
from .storage import create_backend


def _common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        help="Path to a .env file with BOMREPO_* settings"
    )
    parser.add_argument(
        "--directory",
        help="Repository directory (FileSystem storage, overrides config)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )


def _load(args: argparse.Namespace) -> RepoConfig:
    overrides = {}
    if args.directory:
        overrides["directory"] = args.directory
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    config = load_config(args.config, **overrides)
    set_config(config)
    return config


async def _initialize(config: RepoConfig) -> Dict:
    repo = RepoService(create_backend(config))
    metadata = await repo.initialize()
    return {
        "storage_type": config.storage_type,
        "location": str(config.directory) if config.is_filesystem() else config.s3_bucket_name,
        "internal_storage_version": metadata.internal_storage_version,
    }


def init_storage(argv: Optional[List[str]] = None):
    """Console script for bootstrapping repository storage."""
    parser = argparse.ArgumentParser(
        description="Create the repository storage and its metadata record"
    )
    _common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        config = _load(args)
        result = asyncio.run(_initialize(config))
        print(f"Storage ready: {result['storage_type']} at {result['location']} "
              f"(internal storage version {result['internal_storage_version']})")
    except Exception as e:
        logger.error(f"Storage initialization failed: {e}")
        sys.exit(1)


async def _run_retention(config: RepoConfig, max_versions: Optional[int],
                         max_age_days: Optional[int]) -> RetentionReport:
    repo = RepoService(create_backend(config))
    await repo.initialize()
    service = RetentionService(
        repo,
        max_bom_versions=config.max_bom_versions if max_versions is None else max_versions,
        max_bom_age_days=config.max_bom_age_days if max_age_days is None else max_age_days,
    )
    return await service.process_retention()


def run_retention(argv: Optional[List[str]] = None):
    """Console script for a single retention pass."""
    parser = argparse.ArgumentParser(
        description="Apply the retention policy once across every stored BOM"
    )
    _common_arguments(parser)
    parser.add_argument(
        "--max-versions",
        type=int,
        help="Keep at most this many versions per serial number (0 = unlimited)"
    )
    parser.add_argument(
        "--max-age-days",
        type=int,
        help="Delete versions older than this many days (0 = unlimited)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format"
    )
    args = parser.parse_args(argv)

    try:
        config = _load(args)
        report = asyncio.run(_run_retention(config, args.max_versions, args.max_age_days))
    except Exception as e:
        logger.error(f"Retention failed: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps({
            "serial_numbers_checked": report.serial_numbers_checked,
            "deleted_by_count": [list(identifier) for identifier in report.deleted_by_count],
            "deleted_by_age": [list(identifier) for identifier in report.deleted_by_age],
        }, indent=2))
    else:
        print(f"Checked {report.serial_numbers_checked} serial numbers")
        for identifier in report.deleted:
            print(f"  deleted {identifier.serial_number} version {identifier.version}")


async def _search(config: RepoConfig, group: Optional[str], name: Optional[str],
                  version: Optional[str]) -> List[BomIdentifier]:
    repo = RepoService(create_backend(config))
    await repo.initialize()
    cache = CacheService(repo)
    await cache.update_cache()
    return cache.search(group=group, name=name, version=version)


def search(argv: Optional[List[str]] = None):
    """Console script for searching stored BOMs by metadata component."""
    parser = argparse.ArgumentParser(
        description="Search stored BOMs by metadata component group, name and version"
    )
    _common_arguments(parser)
    parser.add_argument("--group", help="Component group")
    parser.add_argument("--name", help="Component name")
    parser.add_argument("--component-version", dest="component_version", help="Component version")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format"
    )
    args = parser.parse_args(argv)

    if not (args.group or args.name or args.component_version):
        parser.error("at least one of --group, --name or --component-version is required")

    try:
        config = _load(args)
        results = asyncio.run(_search(config, args.group, args.name, args.component_version))
    except Exception as e:
        logger.error(f"Search failed: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps([identifier._asdict() for identifier in results], indent=2))
    else:
        for identifier in results:
            print(f"{identifier.serial_number}\t{identifier.version}")
        print(f"{len(results)} match(es)")
