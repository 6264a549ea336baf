"""Tests for identifier helpers and key escaping."""

import pytest

from bomrepo.exceptions import InvalidIdentifierError
from bomrepo.utils import (
    chunk_list,
    escape_serial_number,
    format_file_size,
    generate_serial_number,
    parse_cdx_urn,
    parse_version_segment,
    unescape_serial_number,
    valid_cdx_urn,
    valid_serial_number,
)


class TestSerialNumbers:
    """Serial number validation and generation."""

    @pytest.mark.parametrize("serial_number", [
        "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79",
        "{3e671687-395b-41f5-a30f-a58921a69b79}",
    ])
    def test_accepts_valid_forms(self, serial_number):
        assert valid_serial_number(serial_number)

    @pytest.mark.parametrize("serial_number", [
        None,
        "",
        "3e671687-395b-41f5-a30f-a58921a69b79",
        "urn:uuid:3E671687-395B-41F5-A30F-A58921A69B79",
        "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b7",
        "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79 ",
        "{3e671687-395b-41f5-a30f-a58921a69b79",
        "urn:uuid:{3e671687-395b-41f5-a30f-a58921a69b79}",
    ])
    def test_rejects_invalid_forms(self, serial_number):
        assert not valid_serial_number(serial_number)

    def test_generated_serial_numbers_are_valid_and_unique(self):
        first, second = generate_serial_number(), generate_serial_number()
        assert valid_serial_number(first)
        assert first.startswith("urn:uuid:")
        assert first != second


class TestCdxUrn:
    """CDX URN parsing."""

    def test_parses_serial_number_and_version(self):
        serial_number, version = parse_cdx_urn("urn:cdx:3e671687-395b-41f5-a30f-a58921a69b79/12")
        assert serial_number == "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79"
        assert version == 12

    @pytest.mark.parametrize("urn", [
        "urn:cdx:3e671687-395b-41f5-a30f-a58921a69b79",
        "urn:cdx:3e671687-395b-41f5-a30f-a58921a69b79/0",
        "urn:cdx:3e671687-395b-41f5-a30f-a58921a69b79/x",
        "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79",
    ])
    def test_rejects_malformed_urns(self, urn):
        assert not valid_cdx_urn(urn)
        with pytest.raises(InvalidIdentifierError):
            parse_cdx_urn(urn)


class TestKeySegments:
    """Escaping serial numbers into path and key segments."""

    def test_escape_replaces_colons(self):
        escaped = escape_serial_number("urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79")
        assert escaped == "urn_uuid_3e671687-395b-41f5-a30f-a58921a69b79"
        assert ":" not in escaped

    @pytest.mark.parametrize("serial_number", [
        "urn:uuid:3e671687-395b-41f5-a30f-a58921a69b79",
        "{3e671687-395b-41f5-a30f-a58921a69b79}",
    ])
    def test_unescape_reverses_escape(self, serial_number):
        assert unescape_serial_number(escape_serial_number(serial_number)) == serial_number

    @pytest.mark.parametrize("segment,expected", [
        ("1", 1),
        ("42", 42),
        ("0", None),
        ("-1", None),
        ("v1", None),
        ("bom.cdx", None),
    ])
    def test_parse_version_segment(self, segment, expected):
        assert parse_version_segment(segment) == expected


class TestHelpers:
    def test_chunk_list(self):
        assert chunk_list([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
        assert chunk_list([], 3) == []

    def test_format_file_size(self):
        assert format_file_size(0) == "0 B"
        assert format_file_size(512) == "512.0 B"
        assert format_file_size(1536) == "1.5 KB"
