"""
Tests for the storage engines.

Contract tests run against both engines through the parametrized
``backend`` fixture; engine-specific behaviour follows.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError

from bomrepo.exceptions import BomAlreadyExistsError, StorageBackendError
from bomrepo.models import Format, SpecificationVersion
from bomrepo.storage import FileSystemBackend, S3Backend
from bomrepo.storage.base import (
    METADATA_KEY,
    original_filename,
    parse_original_filename,
    serial_number_from_segment,
)
from bomrepo.storage.s3 import DELETE_BATCH_SIZE

from conftest import OTHER_SERIAL_NUMBER, SERIAL_NUMBER, FakeS3Client


class TestKeyLayout:
    """Original filenames and serial number segments."""

    def test_original_filename(self):
        assert original_filename(Format.XML, SpecificationVersion.V1_2) == "bom.v1_2.xml"
        assert original_filename(Format.PROTOBUF, SpecificationVersion.V1_4) == "bom.v1_4.protobuf"

    def test_parse_original_filename(self):
        assert parse_original_filename("bom.v1_2.xml") == (Format.XML, SpecificationVersion.V1_2)
        assert parse_original_filename("bom.v1_3.json") == (Format.JSON, SpecificationVersion.V1_3)

    @pytest.mark.parametrize("name", ["bom.cdx", "bom.xml", "bom.v9_9.xml", "bom.v1_2.yaml", "notes.txt"])
    def test_parse_original_filename_rejects_other_names(self, name):
        assert parse_original_filename(name) is None

    def test_serial_number_from_segment(self):
        assert serial_number_from_segment("urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79") == SERIAL_NUMBER
        assert serial_number_from_segment("{3e671687-395b-41f5-a30f-a58921a69b79}") == \
            "{3e671687-395b-41f5-a30f-a58921a69b79}"
        assert serial_number_from_segment("lost+found") is None


class TestBackendContract:
    """Behaviour every engine shares."""

    async def test_initialize_records_storage_version(self, backend):
        assert backend.metadata is not None
        assert backend.metadata.internal_storage_version == 1

    async def test_store_then_retrieve(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"\x01\x02\x03")
        assert await backend.retrieve(SERIAL_NUMBER, 1) == b"\x01\x02\x03"

    async def test_retrieve_missing_returns_none(self, backend):
        assert await backend.retrieve(SERIAL_NUMBER, 1) is None
        await backend.store(SERIAL_NUMBER, 1, b"data")
        assert await backend.retrieve(SERIAL_NUMBER, 2) is None

    async def test_store_is_create_only(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"first")
        with pytest.raises(BomAlreadyExistsError) as exc_info:
            await backend.store(SERIAL_NUMBER, 1, b"second")
        assert exc_info.value.serial_number == SERIAL_NUMBER
        assert exc_info.value.version == 1
        assert await backend.retrieve(SERIAL_NUMBER, 1) == b"first"

    async def test_list_versions_is_ascending(self, backend):
        for version in (3, 1, 10, 2):
            await backend.store(SERIAL_NUMBER, version, b"data")
        assert await backend.list_versions(SERIAL_NUMBER) == [1, 2, 3, 10]

    async def test_list_versions_of_unknown_serial_number(self, backend):
        assert await backend.list_versions(SERIAL_NUMBER) == []

    async def test_iter_serial_numbers(self, backend):
        braced = "{3e671687-395b-41f5-a30f-a58921a69b79}"
        await backend.store(SERIAL_NUMBER, 1, b"a")
        await backend.store(SERIAL_NUMBER, 2, b"b")
        await backend.store(OTHER_SERIAL_NUMBER, 1, b"c")
        await backend.store(braced, 1, b"d")

        serial_numbers = [serial_number async for serial_number in backend.iter_serial_numbers()]
        assert sorted(serial_numbers) == sorted([SERIAL_NUMBER, OTHER_SERIAL_NUMBER, braced])

    async def test_delete_removes_one_version(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"a")
        await backend.store(SERIAL_NUMBER, 2, b"b")
        await backend.store_original(SERIAL_NUMBER, 1, b"<bom/>", Format.XML, SpecificationVersion.V1_2)

        await backend.delete(SERIAL_NUMBER, 1)

        assert await backend.list_versions(SERIAL_NUMBER) == [2]
        assert await backend.retrieve(SERIAL_NUMBER, 1) is None
        assert await backend.retrieve_original(SERIAL_NUMBER, 1) is None

    async def test_delete_missing_version_is_a_no_op(self, backend):
        await backend.delete(SERIAL_NUMBER, 7)
        await backend.delete_all(SERIAL_NUMBER)

    async def test_deleted_version_can_be_stored_again(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"a")
        await backend.delete(SERIAL_NUMBER, 1)
        await backend.store(SERIAL_NUMBER, 1, b"b")
        assert await backend.retrieve(SERIAL_NUMBER, 1) == b"b"

    async def test_delete_all(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"a")
        await backend.store(SERIAL_NUMBER, 2, b"b")
        await backend.store(OTHER_SERIAL_NUMBER, 1, b"c")

        await backend.delete_all(SERIAL_NUMBER)

        assert await backend.list_versions(SERIAL_NUMBER) == []
        assert [s async for s in backend.iter_serial_numbers()] == [OTHER_SERIAL_NUMBER]

    async def test_get_age_is_timezone_aware_and_recent(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"a")
        age = await backend.get_age(SERIAL_NUMBER, 1)
        assert age.tzinfo is not None
        assert abs(datetime.now(timezone.utc) - age) < timedelta(minutes=5)

    async def test_get_age_of_missing_version_is_none(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"a")
        await backend.delete(SERIAL_NUMBER, 1)

        assert await backend.get_age(SERIAL_NUMBER, 1) is None
        assert await backend.get_age(OTHER_SERIAL_NUMBER, 3) is None

    async def test_original_round_trip(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"canonical")
        await backend.store_original(SERIAL_NUMBER, 1, bytes([32, 64, 128]), Format.XML, SpecificationVersion.V1_2)

        original = await backend.retrieve_original(SERIAL_NUMBER, 1)

        assert original is not None
        assert original.format == Format.XML
        assert original.specification_version == SpecificationVersion.V1_2
        assert original.content == bytes([32, 64, 128])

    async def test_original_is_create_only(self, backend):
        await backend.store_original(SERIAL_NUMBER, 1, b"one", Format.JSON, SpecificationVersion.V1_3)
        with pytest.raises(BomAlreadyExistsError):
            await backend.store_original(SERIAL_NUMBER, 1, b"two", Format.JSON, SpecificationVersion.V1_3)
        assert (await backend.retrieve_original(SERIAL_NUMBER, 1)).content == b"one"

    async def test_retrieve_original_ignores_canonical_document(self, backend):
        await backend.store(SERIAL_NUMBER, 1, b"canonical")
        assert await backend.retrieve_original(SERIAL_NUMBER, 1) is None


class TestFileSystemBackend:
    """Filesystem engine specifics."""

    async def test_initialize_writes_metadata_file(self, fs_backend):
        await fs_backend.initialize()
        record = json.loads((fs_backend.directory / METADATA_KEY).read_text(encoding="utf-8"))
        assert record == {"InternalStorageVersion": 1}

    async def test_initialize_reads_existing_metadata(self, tmp_path):
        directory = tmp_path / "repo"
        directory.mkdir()
        (directory / METADATA_KEY).write_text('{"InternalStorageVersion": 1}', encoding="utf-8")

        backend = FileSystemBackend(directory)
        metadata = await backend.initialize()

        assert metadata.internal_storage_version == 1

    async def test_initialize_is_idempotent(self, fs_backend):
        first = await fs_backend.initialize()
        second = await FileSystemBackend(fs_backend.directory).initialize()
        assert first == second

    async def test_layout_on_disk(self, fs_backend):
        await fs_backend.initialize()
        await fs_backend.store(SERIAL_NUMBER, 1, b"canonical")
        await fs_backend.store_original(SERIAL_NUMBER, 1, b"<bom/>", Format.XML, SpecificationVersion.V1_2)

        version_directory = fs_backend.directory / "v1" / "urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79" / "1"
        assert (version_directory / "bom.cdx").read_bytes() == b"canonical"
        assert (version_directory / "bom.v1_2.xml").read_bytes() == b"<bom/>"

    async def test_foreign_entries_are_skipped(self, fs_backend):
        await fs_backend.initialize()
        await fs_backend.store(SERIAL_NUMBER, 1, b"a")
        base = fs_backend.directory / "v1"
        (base / "lost+found").mkdir()
        (base / "README").write_text("not a bom", encoding="utf-8")
        (base / "urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79" / "scratch").mkdir()

        assert [s async for s in fs_backend.iter_serial_numbers()] == [SERIAL_NUMBER]
        assert await fs_backend.list_versions(SERIAL_NUMBER) == [1]


class TestS3Backend:
    """S3 engine specifics."""

    async def test_initialize_creates_bucket_and_metadata(self, s3_client, s3_backend):
        await s3_backend.initialize()

        assert "bom-repository" in s3_client.buckets
        assert s3_client.create_bucket_calls == [{"Bucket": "bom-repository"}]
        assert json.loads(s3_client.objects[METADATA_KEY]["Body"]) == {"InternalStorageVersion": 1}

    async def test_initialize_uses_region_location_constraint(self):
        client = FakeS3Client(region_name="eu-west-1")
        await S3Backend(client, "bom-repository").initialize()
        assert client.create_bucket_calls == [{
            "Bucket": "bom-repository",
            "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"},
        }]

    async def test_initialize_keeps_existing_bucket_and_metadata(self, s3_client, s3_backend):
        s3_client.buckets.add("bom-repository")
        s3_client.put_object(Bucket="bom-repository", Key=METADATA_KEY, Body=b'{"InternalStorageVersion": 1}')

        metadata = await s3_backend.initialize()

        assert metadata.internal_storage_version == 1
        assert s3_client.create_bucket_calls == []
        assert s3_client.objects[METADATA_KEY]["Body"] == b'{"InternalStorageVersion": 1}'

    async def test_keys_follow_layout(self, s3_client, s3_backend):
        await s3_backend.initialize()
        await s3_backend.store(SERIAL_NUMBER, 3, b"canonical")
        await s3_backend.store_original(SERIAL_NUMBER, 3, b"{}", Format.JSON, SpecificationVersion.V1_4)

        assert "v1/urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79/3/bom.cdx" in s3_client.objects
        assert "v1/urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79/3/bom.v1_4.json" in s3_client.objects

    async def test_listing_follows_continuation_tokens(self, s3_client, s3_backend):
        s3_client.page_size = 2
        await s3_backend.initialize()
        for version in range(1, 8):
            await s3_backend.store(SERIAL_NUMBER, version, b"x")

        assert await s3_backend.list_versions(SERIAL_NUMBER) == [1, 2, 3, 4, 5, 6, 7]

    async def test_other_client_errors_propagate(self, s3_backend):
        await s3_backend.initialize()

        def denied(**kwargs):
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "HeadObject")

        s3_backend.client.head_object = denied
        with pytest.raises(ClientError):
            await s3_backend.store(SERIAL_NUMBER, 1, b"x")

    async def test_delete_all_batches_at_most_999_keys(self, s3_client, s3_backend):
        await s3_backend.initialize()
        prefix = "v1/urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79"
        for i in range(2500):
            s3_client.put_object(Bucket="bom-repository", Key=f"{prefix}/1/extra-{i:04d}", Body=b"x")

        await s3_backend.delete_all(SERIAL_NUMBER)

        assert all(size <= DELETE_BATCH_SIZE for size in s3_client.delete_calls)
        assert sum(s3_client.delete_calls) == 2500
        assert len(s3_client.delete_calls) == 3
        assert not any(key.startswith(prefix) for key in s3_client.objects)

    async def test_delete_failures_reported_after_all_batches(self, s3_client, s3_backend):
        await s3_backend.initialize()
        prefix = "v1/urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79/1"
        keys = [f"{prefix}/extra-{i:04d}" for i in range(1200)]
        for key in keys:
            s3_client.put_object(Bucket="bom-repository", Key=key, Body=b"x")
        s3_client.fail_keys = {keys[5], keys[1100]}

        with pytest.raises(StorageBackendError) as exc_info:
            await s3_backend.delete(SERIAL_NUMBER, 1)

        assert sorted(exc_info.value.failed_keys) == sorted([keys[5], keys[1100]])
        assert exc_info.value.operation == "delete_objects"
        assert len(s3_client.delete_calls) == 2
        remaining = [key for key in s3_client.objects if key.startswith(prefix)]
        assert sorted(remaining) == sorted([keys[5], keys[1100]])

    async def test_delete_does_not_touch_sibling_versions(self, s3_client, s3_backend):
        await s3_backend.initialize()
        await s3_backend.store(SERIAL_NUMBER, 1, b"a")
        await s3_backend.store(SERIAL_NUMBER, 10, b"b")

        await s3_backend.delete(SERIAL_NUMBER, 1)

        assert await s3_backend.list_versions(SERIAL_NUMBER) == [10]

    async def test_get_age_uses_last_modified(self, s3_client, s3_backend):
        await s3_backend.initialize()
        await s3_backend.store(SERIAL_NUMBER, 1, b"a")
        last_modified = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        s3_client.objects["v1/urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79/1/bom.cdx"]["LastModified"] = \
            last_modified

        assert await s3_backend.get_age(SERIAL_NUMBER, 1) == last_modified
