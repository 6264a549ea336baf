"""
Format codec set.

XML, JSON and protobuf codecs, the schema downgrade chain and media type
negotiation.
"""

from ..models import Format, SpecificationVersion
from .codec import (
    CANONICAL_FORMAT,
    SUPPORTED_VERSIONS,
    decode,
    decode_canonical,
    encode,
    encode_canonical,
    is_supported,
)
from .downgrade import downgrade_step, downgrade_to
from .media import (
    MEDIA_TYPES,
    media_type_for,
    negotiate,
    negotiate_original,
    parse_content_type,
)

__all__ = [
    "CANONICAL_FORMAT",
    "Format",
    "MEDIA_TYPES",
    "SUPPORTED_VERSIONS",
    "SpecificationVersion",
    "decode",
    "decode_canonical",
    "downgrade_step",
    "downgrade_to",
    "encode",
    "encode_canonical",
    "is_supported",
    "media_type_for",
    "negotiate",
    "negotiate_original",
    "parse_content_type",
]
