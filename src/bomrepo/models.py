"""
Document model for CycloneDX BOMs held in the repository.

The model always represents the latest specification version. Older
versions are produced on the output path by the downgrade chain in
bomrepo.formats.downgrade, which only ever removes or narrows data.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import List, Optional


class Format(Enum):
    """Wire formats a BOM can be submitted or served in."""
    XML = "xml"
    JSON = "json"
    PROTOBUF = "protobuf"

    @classmethod
    def parse(cls, value: str) -> Optional["Format"]:
        """Parse a format name case-insensitively, returning None if unknown."""
        for member in cls:
            if member.value == value.lower():
                return member
        return None


@total_ordering
class SpecificationVersion(Enum):
    """CycloneDX specification versions, oldest first."""
    V1_0 = "1.0"
    V1_1 = "1.1"
    V1_2 = "1.2"
    V1_3 = "1.3"
    V1_4 = "1.4"

    @property
    def ordinal(self) -> int:
        return list(SpecificationVersion).index(self)

    @property
    def key_name(self) -> str:
        """Spelling used in storage keys, e.g. "v1_2"."""
        return self.name.lower()

    def __lt__(self, other):
        if not isinstance(other, SpecificationVersion):
            return NotImplemented
        return self.ordinal < other.ordinal

    @classmethod
    def latest(cls) -> "SpecificationVersion":
        return list(cls)[-1]

    @classmethod
    def parse(cls, value: str) -> Optional["SpecificationVersion"]:
        """
        Parse a specification version.

        Accepts "1.2", "v1.2" and "v1_2" spellings.

        Args:
            value: Version text

        Returns:
            SpecificationVersion or None if the text is not a known version
        """
        text = value.strip().lower()
        if text.startswith("v"):
            text = text[1:]
        text = text.replace("_", ".")
        for member in cls:
            if member.value == text:
                return member
        return None


# BOM versions are int32 in the protobuf schema
MAX_BOM_VERSION = 2**31 - 1

# Component types and hash algorithms per version
COMPONENT_TYPES_V1_0 = ("application", "framework", "library", "operating-system", "device")
COMPONENT_TYPES_V1_1 = COMPONENT_TYPES_V1_0 + ("file",)
HASH_ALGORITHMS_V1_0 = ("MD5", "SHA-1", "SHA-256", "SHA-384", "SHA-512", "SHA3-256", "SHA3-512")


@dataclass
class Hash:
    alg: str
    content: str


@dataclass
class LicenseChoice:
    """A license by SPDX id or name, or an SPDX license expression."""
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    expression: Optional[str] = None


@dataclass
class ExternalReference:
    type: str
    url: str
    comment: Optional[str] = None


@dataclass
class Property:
    name: str
    value: Optional[str] = None


@dataclass
class OrganizationalContact:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class OrganizationalEntity:
    name: Optional[str] = None
    urls: List[str] = field(default_factory=list)
    contacts: List[OrganizationalContact] = field(default_factory=list)


@dataclass
class Tool:
    vendor: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    hashes: List[Hash] = field(default_factory=list)
    external_references: List[ExternalReference] = field(default_factory=list)


@dataclass
class ComponentEvidence:
    licenses: List[LicenseChoice] = field(default_factory=list)
    copyright: List[str] = field(default_factory=list)


@dataclass
class ReleaseNotes:
    type: str
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass
class Component:
    """A software or hardware component described by a BOM."""
    type: str = "library"
    name: str = ""
    bom_ref: Optional[str] = None
    supplier: Optional[OrganizationalEntity] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    group: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    scope: Optional[str] = None
    hashes: List[Hash] = field(default_factory=list)
    licenses: List[LicenseChoice] = field(default_factory=list)
    copyright: Optional[str] = None
    cpe: Optional[str] = None
    purl: Optional[str] = None
    modified: Optional[bool] = None
    external_references: List[ExternalReference] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)
    components: List["Component"] = field(default_factory=list)
    evidence: Optional[ComponentEvidence] = None
    release_notes: Optional[ReleaseNotes] = None


@dataclass
class Service:
    name: str = ""
    bom_ref: Optional[str] = None
    provider: Optional[OrganizationalEntity] = None
    group: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    endpoints: List[str] = field(default_factory=list)
    authenticated: Optional[bool] = None
    external_references: List[ExternalReference] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)


@dataclass
class Dependency:
    ref: str
    depends_on: List[str] = field(default_factory=list)


@dataclass
class Composition:
    aggregate: str = "unknown"
    assemblies: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)


@dataclass
class VulnerabilityRating:
    score: Optional[float] = None
    severity: Optional[str] = None
    method: Optional[str] = None


@dataclass
class Vulnerability:
    id: Optional[str] = None
    bom_ref: Optional[str] = None
    source_name: Optional[str] = None
    source_url: Optional[str] = None
    ratings: List[VulnerabilityRating] = field(default_factory=list)
    description: Optional[str] = None
    recommendation: Optional[str] = None
    affects: List[str] = field(default_factory=list)


@dataclass
class Metadata:
    timestamp: Optional[str] = None
    tools: List[Tool] = field(default_factory=list)
    authors: List[OrganizationalContact] = field(default_factory=list)
    component: Optional[Component] = None
    manufacture: Optional[OrganizationalEntity] = None
    supplier: Optional[OrganizationalEntity] = None
    licenses: List[LicenseChoice] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)


@dataclass
class Bom:
    """
    A CycloneDX BOM.

    Identified by (serial_number, version). Both may be unset on submission;
    the repository assigns them when the BOM is stored.
    """
    serial_number: Optional[str] = None
    version: Optional[int] = None
    spec_version: SpecificationVersion = SpecificationVersion.latest()
    metadata: Optional[Metadata] = None
    components: List[Component] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    external_references: List[ExternalReference] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    compositions: List[Composition] = field(default_factory=list)
    vulnerabilities: List[Vulnerability] = field(default_factory=list)


@dataclass
class OriginalBom:
    """Byte-exact submitted document with the format it was submitted in."""
    format: Format
    specification_version: SpecificationVersion
    content: bytes


@dataclass
class StorageMetadata:
    """Per-backend record gating future storage layout migrations."""
    internal_storage_version: int

    def to_json_dict(self) -> dict:
        return {"InternalStorageVersion": self.internal_storage_version}

    @classmethod
    def from_json_dict(cls, data: dict) -> "StorageMetadata":
        return cls(internal_storage_version=int(data["InternalStorageVersion"]))
