"""
Codec dispatch.

Dispatches encoding and decoding to the XML, JSON and protobuf codecs and
folds the downgrade chain on the output path.
"""

from typing import Dict, Optional, Tuple

from ..exceptions import UnacceptableMediaTypeError
from ..models import Bom, Format, SpecificationVersion
from . import json_codec, protobuf_codec, xml_codec
from .downgrade import downgrade_to

_CODECS = {
    Format.XML: xml_codec,
    Format.JSON: json_codec,
    Format.PROTOBUF: protobuf_codec,
}

SUPPORTED_VERSIONS: Dict[Format, Tuple[SpecificationVersion, ...]] = {
    fmt: tuple(codec.SUPPORTED_VERSIONS) for fmt, codec in _CODECS.items()
}

# The form every document is persisted in
CANONICAL_FORMAT = Format.PROTOBUF


def is_supported(format: Format, spec_version: SpecificationVersion) -> bool:
    return spec_version in SUPPORTED_VERSIONS[format]


def encode(bom: Bom, format: Format, spec_version: Optional[SpecificationVersion] = None) -> bytes:
    """
    Encode a BOM in a format at a specification version.

    Args:
        bom: BOM at the latest specification version
        format: Output format
        spec_version: Target version; defaults to the newest the format supports

    Returns:
        bytes: Encoded document

    Raises:
        UnacceptableMediaTypeError: If the format cannot express spec_version
    """
    if spec_version is None:
        spec_version = SUPPORTED_VERSIONS[format][-1]
    if not is_supported(format, spec_version):
        raise UnacceptableMediaTypeError(
            f"Format {format.value} does not support specification version {spec_version.value}"
        )
    return _CODECS[format].serialize(downgrade_to(bom, spec_version))


def decode(content: bytes, format: Format) -> Tuple[Bom, SpecificationVersion]:
    """
    Decode a document of any supported version.

    Args:
        content: Encoded document
        format: Format the content is in

    Returns:
        Tuple of the Bom tagged with the latest specification version and the
        version the document declared

    Raises:
        BomFormatError: If the content cannot be decoded
    """
    return _CODECS[format].deserialize(content)


def encode_canonical(bom: Bom) -> bytes:
    """Encode the stored form: protobuf at the latest specification version."""
    return encode(bom, CANONICAL_FORMAT, SpecificationVersion.latest())


def decode_canonical(content: bytes) -> Bom:
    bom, _ = decode(content, CANONICAL_FORMAT)
    return bom
