"""
S3 storage engine.

Works against AWS S3 and S3-compatible endpoints (MinIO and similar).
Listings are paginated with continuation tokens and streamed page by page;
bulk deletes are issued in batches of at most 999 keys.

Create-only writes are an existence check (``head_object``) followed by
``put_object``. The pair is not atomic: two writers racing for the same new
version can both pass the check.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from loguru import logger

from ..config import RepoConfig
from ..exceptions import BomAlreadyExistsError, StorageBackendError
from ..models import Format, OriginalBom, SpecificationVersion, StorageMetadata
from ..utils import chunk_list, format_file_size, parse_version_segment, timing_context
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

# delete_objects accepts up to 1000 keys per request
DELETE_BATCH_SIZE = 999

_NOT_FOUND_CODES = ("NoSuchKey", "NotFound", "404")
_NO_BUCKET_CODES = ("NoSuchBucket", "NotFound", "404")


def create_s3_client(config: RepoConfig):
    """
    Build a boto3 S3 client from configuration.

    Args:
        config: RepoConfig with the s3_* options set

    Returns:
        boto3 S3 client
    """
    addressing_style = "path" if config.s3_force_path_style else "auto"
    client = boto3.client(
        "s3",
        config=BotoConfig(s3={"addressing_style": addressing_style}),
        **config.get_s3_client_kwargs(),
    )
    logger.info(f"S3 client initialized for region {config.s3_region}"
                + (f" at {config.s3_endpoint}" if config.s3_endpoint else ""))
    return client


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Backend(StorageBackend):
    """Storage engine backed by a single S3 bucket."""

    name = "s3"

    def __init__(self, client: Any, bucket: str):
        super().__init__()
        self.client = client
        self.bucket = bucket

    # Key helpers

    def _serial_prefix(self, serial_number: str) -> str:
        return f"{base_segment()}/{serial_number_segment(serial_number)}/"

    def _version_prefix(self, serial_number: str, version: int) -> str:
        return f"{self._serial_prefix(serial_number)}{version}/"

    def _canonical_key(self, serial_number: str, version: int) -> str:
        return f"{self._version_prefix(serial_number, version)}{CANONICAL_FILENAME}"

    # Object primitives

    async def _object_exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise

    def _get_object_sync(self, key: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise
        return response["Body"].read()

    async def _get_object(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._get_object_sync, key)

    async def _put_if_absent(self, key: str, content: bytes) -> bool:
        if await self._object_exists(key):
            return False
        await asyncio.to_thread(self.client.put_object, Bucket=self.bucket, Key=key, Body=content)
        logger.debug(f"Uploaded s3://{self.bucket}/{key} ({format_file_size(len(content))})")
        return True

    async def _iter_pages(self, prefix: str, delimiter: Optional[str] = None) -> AsyncIterator[Dict[str, Any]]:
        """Yield list_objects_v2 responses one round trip at a time."""
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        while True:
            response = await asyncio.to_thread(self.client.list_objects_v2, **kwargs)
            yield response
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")
            if not token:
                break
            kwargs["ContinuationToken"] = token

    async def _iter_child_segments(self, prefix: str) -> AsyncIterator[str]:
        """Yield the next path segment of every common prefix under prefix."""
        async for page in self._iter_pages(prefix, delimiter="/"):
            for common_prefix in page.get("CommonPrefixes", []):
                segment = common_prefix["Prefix"][len(prefix):].rstrip("/")
                if segment:
                    yield segment

    async def _delete_batch(self, keys: List[str]) -> List[str]:
        """Delete one batch; returns the keys that failed."""
        response = await asyncio.to_thread(
            self.client.delete_objects,
            Bucket=self.bucket,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        failed = []
        for error in response.get("Errors", []):
            logger.error(f"Failed to delete s3://{self.bucket}/{error.get('Key')}: "
                         f"{error.get('Code')} {error.get('Message')}")
            failed.append(error.get("Key"))
        return failed

    async def _delete_prefix(self, prefix: str) -> int:
        """
        Delete every object under a prefix.

        Keys are streamed from the listing and deleted in batches of at most
        DELETE_BATCH_SIZE. Per-key failures are collected across all batches
        and reported together once every batch has been attempted.

        Returns:
            int: Number of keys deleted

        Raises:
            StorageBackendError: If any key could not be deleted
        """
        pending: List[str] = []
        failed: List[str] = []
        attempted = 0

        async for page in self._iter_pages(prefix):
            pending.extend(obj["Key"] for obj in page.get("Contents", []))
            while len(pending) >= DELETE_BATCH_SIZE:
                batch, pending = pending[:DELETE_BATCH_SIZE], pending[DELETE_BATCH_SIZE:]
                failed.extend(await self._delete_batch(batch))
                attempted += len(batch)

        for batch in chunk_list(pending, DELETE_BATCH_SIZE):
            failed.extend(await self._delete_batch(list(batch)))
            attempted += len(batch)

        if failed:
            raise StorageBackendError(
                f"Failed to delete {len(failed)} of {attempted} objects under {prefix}",
                operation="delete_objects",
                bucket=self.bucket,
                failed_keys=failed,
            )
        return attempted

    # StorageBackend

    async def _ensure_bucket(self) -> None:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in _NO_BUCKET_CODES:
                raise

        kwargs: Dict[str, Any] = {"Bucket": self.bucket}
        region = getattr(getattr(self.client, "meta", None), "region_name", None)
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        await asyncio.to_thread(self.client.create_bucket, **kwargs)
        logger.info(f"Created bucket {self.bucket}")

    async def initialize(self) -> StorageMetadata:
        with timing_context(f"s3.initialize(bucket={self.bucket})"):
            await self._ensure_bucket()

            metadata = StorageMetadata(internal_storage_version=INTERNAL_STORAGE_VERSION)
            payload = json.dumps(metadata.to_json_dict(), indent=2).encode("utf-8")
            if await self._put_if_absent(METADATA_KEY, payload):
                logger.info(f"Created storage metadata in s3://{self.bucket}/{METADATA_KEY}")
            else:
                content = await self._get_object(METADATA_KEY)
                if content is not None:
                    metadata = StorageMetadata.from_json_dict(json.loads(content.decode("utf-8")))
                logger.info(f"Loaded storage metadata from s3://{self.bucket}: "
                            f"internal storage version {metadata.internal_storage_version}")
        self.metadata = metadata
        return metadata

    async def store(self, serial_number: str, version: int, content: bytes) -> None:
        key = self._canonical_key(serial_number, version)
        with timing_context(f"s3.store({serial_number}, {version})"):
            created = await self._put_if_absent(key, content)
        if not created:
            raise BomAlreadyExistsError(
                "BOM version already exists",
                serial_number=serial_number,
                version=version,
            )
        logger.info(f"Stored {serial_number} version {version} ({format_file_size(len(content))})")

    async def retrieve(self, serial_number: str, version: int) -> Optional[bytes]:
        return await self._get_object(self._canonical_key(serial_number, version))

    async def list_versions(self, serial_number: str) -> List[int]:
        versions = []
        async for segment in self._iter_child_segments(self._serial_prefix(serial_number)):
            version = parse_version_segment(segment)
            if version is not None:
                versions.append(version)
        return sorted(versions)

    async def iter_serial_numbers(self) -> AsyncIterator[str]:
        async for segment in self._iter_child_segments(f"{base_segment()}/"):
            serial_number = serial_number_from_segment(segment)
            if serial_number is None:
                logger.debug(f"Skipping foreign prefix {segment}")
                continue
            yield serial_number

    async def delete(self, serial_number: str, version: int) -> None:
        with timing_context(f"s3.delete({serial_number}, {version})"):
            deleted = await self._delete_prefix(self._version_prefix(serial_number, version))
        if deleted:
            logger.info(f"Deleted {serial_number} version {version} ({deleted} objects)")

    async def delete_all(self, serial_number: str) -> None:
        with timing_context(f"s3.delete_all({serial_number})"):
            deleted = await self._delete_prefix(self._serial_prefix(serial_number))
        if deleted:
            logger.info(f"Deleted all versions of {serial_number} ({deleted} objects)")

    async def get_age(self, serial_number: str, version: int) -> Optional[datetime]:
        try:
            response = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=self._canonical_key(serial_number, version)
            )
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise
        last_modified: datetime = response["LastModified"]
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        return last_modified.astimezone(timezone.utc)

    async def store_original(self, serial_number: str, version: int, content: bytes,
                             format: Format, spec_version: SpecificationVersion) -> None:
        key = f"{self._version_prefix(serial_number, version)}{original_filename(format, spec_version)}"
        with timing_context(f"s3.store_original({serial_number}, {version}, {format.value})"):
            created = await self._put_if_absent(key, content)
        if not created:
            raise BomAlreadyExistsError(
                "Original BOM already exists",
                serial_number=serial_number,
                version=version,
                details={"format": format.value, "spec_version": spec_version.value},
            )

    async def retrieve_original(self, serial_number: str, version: int) -> Optional[OriginalBom]:
        prefix = self._version_prefix(serial_number, version)
        async for page in self._iter_pages(prefix, delimiter="/"):
            for obj in page.get("Contents", []):
                parsed = parse_original_filename(obj["Key"][len(prefix):])
                if parsed is None:
                    continue
                content = await self._get_object(obj["Key"])
                if content is None:
                    continue
                fmt, spec_version = parsed
                return OriginalBom(format=fmt, specification_version=spec_version, content=content)
        return None
