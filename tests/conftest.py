"""
Shared pytest fixtures for bomrepo tests.

This module provides:
- An in-memory S3 client speaking the subset of the boto3 API the S3
  engine uses, raising real botocore ClientErrors
- Filesystem and S3 backends, and a fixture parametrized over both
- Sample BOMs and documents
"""

import io
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import pytest
from botocore.exceptions import ClientError

from bomrepo.models import Bom, Component, Metadata
from bomrepo.repository import RepoService
from bomrepo.storage import FileSystemBackend, S3Backend

SERIAL_NUMBER = "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79"
OTHER_SERIAL_NUMBER = "urn:uuid:0b9a1c2d-7f6e-4a5b-9c8d-1e2f3a4b5c6d"


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Meta:
    def __init__(self, region_name: str):
        self.region_name = region_name


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client."""

    def __init__(self, region_name: str = "us-east-1", page_size: int = 1000):
        self.meta = _Meta(region_name)
        self.page_size = page_size
        self.buckets: Set[str] = set()
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.fail_keys: Set[str] = set()
        self.delete_calls: List[int] = []
        self.create_bucket_calls: List[Dict[str, Any]] = []

    def _require_bucket(self, bucket: str, operation: str) -> None:
        if bucket not in self.buckets:
            raise _client_error("NoSuchBucket", operation)

    def head_bucket(self, Bucket: str) -> Dict[str, Any]:
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket: str, **kwargs) -> Dict[str, Any]:
        self.create_bucket_calls.append({"Bucket": Bucket, **kwargs})
        self.buckets.add(Bucket)
        return {}

    def head_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        self._require_bucket(Bucket, "HeadObject")
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        obj = self.objects[Key]
        return {"LastModified": obj["LastModified"], "ContentLength": len(obj["Body"])}

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        self._require_bucket(Bucket, "GetObject")
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        obj = self.objects[Key]
        return {"Body": io.BytesIO(obj["Body"]), "LastModified": obj["LastModified"]}

    def put_object(self, Bucket: str, Key: str, Body: bytes) -> Dict[str, Any]:
        self._require_bucket(Bucket, "PutObject")
        self.objects[Key] = {"Body": bytes(Body), "LastModified": datetime.now(timezone.utc)}
        return {}

    def list_objects_v2(self, Bucket: str, Prefix: str = "", Delimiter: Optional[str] = None,
                        ContinuationToken: Optional[str] = None) -> Dict[str, Any]:
        self._require_bucket(Bucket, "ListObjectsV2")

        # (name, is_common_prefix) in key order, common prefixes collapsed
        entries = []
        seen_prefixes = set()
        for key in sorted(self.objects):
            if not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common_prefix = Prefix + rest[:rest.index(Delimiter) + 1]
                if common_prefix not in seen_prefixes:
                    seen_prefixes.add(common_prefix)
                    entries.append((common_prefix, True))
            else:
                entries.append((key, False))

        # the token is the last name returned, so deletes between pages do not skip entries
        if ContinuationToken:
            entries = [entry for entry in entries if entry[0] > ContinuationToken]
        page = entries[:self.page_size]
        truncated = len(entries) > self.page_size

        response: Dict[str, Any] = {
            "IsTruncated": truncated,
            "KeyCount": len(page),
            "Contents": [
                {"Key": name, "LastModified": self.objects[name]["LastModified"],
                 "Size": len(self.objects[name]["Body"])}
                for name, is_prefix in page if not is_prefix
            ],
            "CommonPrefixes": [{"Prefix": name} for name, is_prefix in page if is_prefix],
        }
        if truncated:
            response["NextContinuationToken"] = page[-1][0]
        return response

    def delete_objects(self, Bucket: str, Delete: Dict[str, Any]) -> Dict[str, Any]:
        self._require_bucket(Bucket, "DeleteObjects")
        keys = [obj["Key"] for obj in Delete["Objects"]]
        assert len(keys) <= 1000
        self.delete_calls.append(len(keys))

        errors = []
        for key in keys:
            if key in self.fail_keys:
                errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
            else:
                self.objects.pop(key, None)
        return {"Errors": errors} if errors else {}


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def fs_backend(tmp_path) -> FileSystemBackend:
    return FileSystemBackend(tmp_path / "repo")


@pytest.fixture
def s3_backend(s3_client) -> S3Backend:
    return S3Backend(s3_client, "bom-repository")


@pytest.fixture(params=["filesystem", "s3"])
async def backend(request, tmp_path):
    """An initialized backend of each engine."""
    if request.param == "filesystem":
        engine = FileSystemBackend(tmp_path / "repo")
    else:
        engine = S3Backend(FakeS3Client(), "bom-repository")
    await engine.initialize()
    return engine


@pytest.fixture
async def repo(fs_backend) -> RepoService:
    service = RepoService(fs_backend)
    await service.initialize()
    return service


def make_bom(serial_number: Optional[str] = None, version: Optional[int] = None,
             name: str = "acme-app", group: Optional[str] = "com.acme",
             component_version: Optional[str] = "1.0.0") -> Bom:
    """Build a small BOM with a metadata component and one dependency component."""
    return Bom(
        serial_number=serial_number,
        version=version,
        metadata=Metadata(
            timestamp="2022-03-01T12:00:00Z",
            component=Component(type="application", name=name, group=group, version=component_version),
        ),
        components=[
            Component(type="library", name="left-pad", version="1.3.0",
                      purl="pkg:npm/left-pad@1.3.0", bom_ref="pkg:npm/left-pad@1.3.0"),
        ],
    )


@pytest.fixture
def sample_bom() -> Bom:
    return make_bom()


JSON_DOCUMENT = b"""{
  "bomFormat": "CycloneDX",
  "specVersion": "1.3",
  "serialNumber": "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79",
  "version": 1,
  "metadata": {
    "component": {"type": "application", "group": "com.acme", "name": "Acme-App", "version": "2.0.0"}
  },
  "components": [
    {"type": "library", "name": "left-pad", "version": "1.3.0", "purl": "pkg:npm/left-pad@1.3.0"}
  ]
}"""

XML_DOCUMENT = b"""<?xml version="1.0" encoding="utf-8"?>
<bom xmlns="http://cyclonedx.org/schema/bom/1.2" version="1" serialNumber="urn:uuid:0b9a1c2d-7f6e-4a5b-9c8d-1e2f3a4b5c6d">
  <metadata>
    <component type="application">
      <group>com.acme</group>
      <name>acme-service</name>
      <version>3.1.0</version>
    </component>
  </metadata>
  <components>
    <component type="library">
      <name>left-pad</name>
      <version>1.3.0</version>
    </component>
  </components>
</bom>"""
