"""
Media type parsing and content negotiation.

Submissions name their format through a Content-Type header and
retrievals choose one through an Accept header. Both carry an optional
``version`` parameter selecting the specification version.
"""

from typing import Dict, List, NamedTuple, Optional, Tuple

from ..exceptions import UnacceptableMediaTypeError, UnsupportedMediaTypeError
from ..models import Format, OriginalBom, SpecificationVersion
from .codec import SUPPORTED_VERSIONS

MEDIA_TYPES: Dict[Format, str] = {
    Format.XML: "application/vnd.cyclonedx+xml",
    Format.JSON: "application/vnd.cyclonedx+json",
    Format.PROTOBUF: "application/x.vnd.cyclonedx+protobuf",
}

# Generic media types accepted as aliases for a format
MEDIA_TYPE_ALIASES: Dict[str, Format] = {
    "text/xml": Format.XML,
    "application/xml": Format.XML,
    "application/json": Format.JSON,
    "application/octet-stream": Format.PROTOBUF,
}

_FORMATS_BY_MEDIA_TYPE: Dict[str, Format] = {
    **{media_type: fmt for fmt, media_type in MEDIA_TYPES.items()},
    **MEDIA_TYPE_ALIASES,
}

# Served for "*/*" and for an absent Accept header
DEFAULT_FORMAT = Format.JSON

_WILDCARDS = ("*/*", "application/*")


class MediaRange(NamedTuple):
    """One entry of an Accept header or a Content-Type header."""
    media_type: str
    parameters: Dict[str, str]
    quality: float


def media_type_for(format: Format, spec_version: Optional[SpecificationVersion] = None) -> str:
    """
    Build the media type string for a format.

    Args:
        format: Wire format
        spec_version: Optional specification version parameter

    Returns:
        str: e.g. "application/vnd.cyclonedx+json; version=1.4"
    """
    media_type = MEDIA_TYPES[format]
    if spec_version is not None:
        media_type = f"{media_type}; version={spec_version.value}"
    return media_type


def parse_media_range(value: str) -> MediaRange:
    """Parse a single "type/subtype; key=value" entry."""
    parts = [part.strip() for part in value.split(";")]
    media_type = parts[0].lower()
    parameters: Dict[str, str] = {}
    quality = 1.0
    for part in parts[1:]:
        if "=" not in part:
            continue
        key, _, param_value = part.partition("=")
        key = key.strip().lower()
        param_value = param_value.strip().strip('"')
        if key == "q":
            try:
                quality = float(param_value)
            except ValueError:
                quality = 0.0
        else:
            parameters[key] = param_value
    return MediaRange(media_type, parameters, quality)


def parse_accept(header: Optional[str]) -> List[MediaRange]:
    """
    Parse an Accept header into media ranges, most preferred first.

    Ranges with q=0 are dropped. Ties keep header order.
    """
    if not header or not header.strip():
        return [MediaRange("*/*", {}, 1.0)]
    ranges = [parse_media_range(entry) for entry in header.split(",") if entry.strip()]
    ranges = [r for r in ranges if r.quality > 0]
    return sorted(ranges, key=lambda r: r.quality, reverse=True)


def _requested_version(media_range: MediaRange) -> Tuple[bool, Optional[SpecificationVersion]]:
    """Return (has_version_parameter, parsed version or None)."""
    if "version" not in media_range.parameters:
        return False, None
    return True, SpecificationVersion.parse(media_range.parameters["version"])


def parse_content_type(header: Optional[str]) -> Tuple[Format, Optional[SpecificationVersion]]:
    """
    Resolve a submission Content-Type to a format and specification version.

    Args:
        header: Content-Type header value

    Returns:
        Tuple of (Format, SpecificationVersion or None when the header
        carries no version parameter)

    Raises:
        UnsupportedMediaTypeError: If the media type is not a BOM format, or
            the version parameter is unknown or unsupported by the format
    """
    if not header:
        raise UnsupportedMediaTypeError("Missing content type")

    media_range = parse_media_range(header)
    fmt = _FORMATS_BY_MEDIA_TYPE.get(media_range.media_type)
    if fmt is None:
        raise UnsupportedMediaTypeError(f"Unsupported content type: {media_range.media_type}", media_type=header)

    has_version, spec_version = _requested_version(media_range)
    if not has_version:
        return fmt, None
    if spec_version is None or spec_version not in SUPPORTED_VERSIONS[fmt]:
        raise UnsupportedMediaTypeError(
            f"Unsupported specification version for {fmt.value}: {media_range.parameters['version']}",
            media_type=header,
        )
    return fmt, spec_version


def negotiate(accept: Optional[str]) -> Tuple[Format, SpecificationVersion, str]:
    """
    Choose an output format and specification version from an Accept header.

    Args:
        accept: Accept header value; empty means anything

    Returns:
        Tuple of (Format, SpecificationVersion, response media type)

    Raises:
        UnacceptableMediaTypeError: If no entry can be produced
    """
    for media_range in parse_accept(accept):
        if media_range.media_type in _WILDCARDS:
            fmt = DEFAULT_FORMAT
        else:
            fmt = _FORMATS_BY_MEDIA_TYPE.get(media_range.media_type)
            if fmt is None:
                continue

        supported = SUPPORTED_VERSIONS[fmt]
        has_version, spec_version = _requested_version(media_range)
        if not has_version:
            spec_version = supported[-1]
        elif spec_version not in supported:
            continue
        return fmt, spec_version, media_type_for(fmt, spec_version)

    raise UnacceptableMediaTypeError("No acceptable media type can be produced", media_type=accept)


def negotiate_original(accept: Optional[str], original: OriginalBom) -> str:
    """
    Check an Accept header against a preserved original document.

    An entry matches when its media type names the original's format and
    its version parameter, if present, equals the original's version.

    Args:
        accept: Accept header value
        original: The stored original document

    Returns:
        str: Media type to serve the original bytes with

    Raises:
        UnacceptableMediaTypeError: If no entry matches the original
    """
    for media_range in parse_accept(accept):
        if media_range.media_type in _WILDCARDS:
            return media_type_for(original.format, original.specification_version)
        if _FORMATS_BY_MEDIA_TYPE.get(media_range.media_type) != original.format:
            continue
        has_version, spec_version = _requested_version(media_range)
        if has_version and spec_version != original.specification_version:
            continue
        return media_type_for(original.format, original.specification_version)

    raise UnacceptableMediaTypeError(
        "Original document is only available as "
        f"{media_type_for(original.format, original.specification_version)}",
        media_type=accept,
    )
