"""
Protobuf codec (specification versions 1.3 and 1.4).

Messages follow the published CycloneDX bom-1.3.proto and bom-1.4.proto
schemas: same field numbers, same enums, google.protobuf.Timestamp for
timestamps. The schema is declared below as tables and compiled into a
private descriptor pool at import time, so no generated _pb2 module is
needed. Fields the document model does not carry are left undeclared and
are skipped when parsing.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple, Type, Union

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, timestamp_pb2
from google.protobuf.message import DecodeError, Message

from ..exceptions import BomFormatError
from ..models import (
    Bom,
    Component,
    ComponentEvidence,
    Composition,
    Dependency,
    ExternalReference,
    Hash,
    LicenseChoice,
    Metadata,
    OrganizationalContact,
    OrganizationalEntity,
    Property,
    ReleaseNotes,
    Service,
    SpecificationVersion,
    Tool,
    Vulnerability,
    VulnerabilityRating,
)

PACKAGE = "cyclonedx.v1_4"

SUPPORTED_VERSIONS = (
    SpecificationVersion.V1_3,
    SpecificationVersion.V1_4,
)

_FieldType = Union[str, List[str]]

_SCALARS = {
    "string": descriptor_pb2.FieldDescriptorProto.TYPE_STRING,
    "int32": descriptor_pb2.FieldDescriptorProto.TYPE_INT32,
    "bool": descriptor_pb2.FieldDescriptorProto.TYPE_BOOL,
    "double": descriptor_pb2.FieldDescriptorProto.TYPE_DOUBLE,
}

_WELL_KNOWN = {
    "Timestamp": ".google.protobuf.Timestamp",
}

# enum name -> [(value name, number, model value)]; None has no model spelling
ENUMS: Dict[str, List[Tuple[str, int, Optional[str]]]] = {
    "Classification": [
        ("CLASSIFICATION_NULL", 0, None),
        ("CLASSIFICATION_APPLICATION", 1, "application"),
        ("CLASSIFICATION_FRAMEWORK", 2, "framework"),
        ("CLASSIFICATION_LIBRARY", 3, "library"),
        ("CLASSIFICATION_OPERATING_SYSTEM", 4, "operating-system"),
        ("CLASSIFICATION_DEVICE", 5, "device"),
        ("CLASSIFICATION_FILE", 6, "file"),
        ("CLASSIFICATION_CONTAINER", 7, "container"),
        ("CLASSIFICATION_FIRMWARE", 8, "firmware"),
    ],
    "Scope": [
        ("SCOPE_UNSPECIFIED", 0, None),
        ("SCOPE_REQUIRED", 1, "required"),
        ("SCOPE_OPTIONAL", 2, "optional"),
        ("SCOPE_EXCLUDED", 3, "excluded"),
    ],
    "HashAlg": [
        ("HASH_ALG_NULL", 0, None),
        ("HASH_ALG_MD_5", 1, "MD5"),
        ("HASH_ALG_SHA_1", 2, "SHA-1"),
        ("HASH_ALG_SHA_256", 3, "SHA-256"),
        ("HASH_ALG_SHA_384", 4, "SHA-384"),
        ("HASH_ALG_SHA_512", 5, "SHA-512"),
        ("HASH_ALG_SHA_3_256", 6, "SHA3-256"),
        ("HASH_ALG_SHA_3_384", 7, "SHA3-384"),
        ("HASH_ALG_SHA_3_512", 8, "SHA3-512"),
        ("HASH_ALG_BLAKE_2_B_256", 9, "BLAKE2b-256"),
        ("HASH_ALG_BLAKE_2_B_384", 10, "BLAKE2b-384"),
        ("HASH_ALG_BLAKE_2_B_512", 11, "BLAKE2b-512"),
        ("HASH_ALG_BLAKE_3", 12, "BLAKE3"),
    ],
    "ExternalReferenceType": [
        ("EXTERNAL_REFERENCE_TYPE_OTHER", 0, "other"),
        ("EXTERNAL_REFERENCE_TYPE_VCS", 1, "vcs"),
        ("EXTERNAL_REFERENCE_TYPE_ISSUE_TRACKER", 2, "issue-tracker"),
        ("EXTERNAL_REFERENCE_TYPE_WEBSITE", 3, "website"),
        ("EXTERNAL_REFERENCE_TYPE_ADVISORIES", 4, "advisories"),
        ("EXTERNAL_REFERENCE_TYPE_BOM", 5, "bom"),
        ("EXTERNAL_REFERENCE_TYPE_MAILING_LIST", 6, "mailing-list"),
        ("EXTERNAL_REFERENCE_TYPE_SOCIAL", 7, "social"),
        ("EXTERNAL_REFERENCE_TYPE_CHAT", 8, "chat"),
        ("EXTERNAL_REFERENCE_TYPE_DOCUMENTATION", 9, "documentation"),
        ("EXTERNAL_REFERENCE_TYPE_SUPPORT", 10, "support"),
        ("EXTERNAL_REFERENCE_TYPE_DISTRIBUTION", 11, "distribution"),
        ("EXTERNAL_REFERENCE_TYPE_LICENSE", 12, "license"),
        ("EXTERNAL_REFERENCE_TYPE_BUILD_META", 13, "build-meta"),
        ("EXTERNAL_REFERENCE_TYPE_BUILD_SYSTEM", 14, "build-system"),
        ("EXTERNAL_REFERENCE_TYPE_RELEASE_NOTES", 15, "release-notes"),
    ],
    "Aggregate": [
        ("AGGREGATE_NOT_SPECIFIED", 0, "not_specified"),
        ("AGGREGATE_COMPLETE", 1, "complete"),
        ("AGGREGATE_INCOMPLETE", 2, "incomplete"),
        ("AGGREGATE_INCOMPLETE_FIRST_PARTY_ONLY", 3, "incomplete_first_party_only"),
        ("AGGREGATE_INCOMPLETE_THIRD_PARTY_ONLY", 4, "incomplete_third_party_only"),
        ("AGGREGATE_UNKNOWN", 5, "unknown"),
    ],
    "Severity": [
        ("SEVERITY_UNKNOWN", 0, "unknown"),
        ("SEVERITY_CRITICAL", 1, "critical"),
        ("SEVERITY_HIGH", 2, "high"),
        ("SEVERITY_MEDIUM", 3, "medium"),
        ("SEVERITY_LOW", 4, "low"),
        ("SEVERITY_INFO", 5, "info"),
        ("SEVERITY_NONE", 6, "none"),
    ],
    "ScoreMethod": [
        ("SCORE_METHOD_NULL", 0, None),
        ("SCORE_METHOD_CVSSV2", 1, "CVSSv2"),
        ("SCORE_METHOD_CVSSV3", 2, "CVSSv3"),
        ("SCORE_METHOD_CVSSV31", 3, "CVSSv31"),
        ("SCORE_METHOD_OWASP", 4, "OWASP"),
        ("SCORE_METHOD_OTHER", 5, "other"),
    ],
}

# message name -> [(field name, tag, type)]; a list type is repeated
MESSAGES: Dict[str, List[Tuple[str, int, _FieldType]]] = {
    "Hash": [
        ("alg", 1, "HashAlg"),
        ("value", 2, "string"),
    ],
    "License": [
        ("id", 1, "string"),
        ("name", 2, "string"),
        ("url", 4, "string"),
    ],
    "LicenseChoice": [
        ("license", 1, "License"),
        ("expression", 2, "string"),
    ],
    "ExternalReference": [
        ("type", 1, "ExternalReferenceType"),
        ("url", 2, "string"),
        ("comment", 3, "string"),
    ],
    "Property": [
        ("name", 1, "string"),
        ("value", 2, "string"),
    ],
    "OrganizationalContact": [
        ("name", 1, "string"),
        ("email", 2, "string"),
        ("phone", 3, "string"),
    ],
    "OrganizationalEntity": [
        ("name", 1, "string"),
        ("url", 2, ["string"]),
        ("contact", 3, ["OrganizationalContact"]),
    ],
    "Tool": [
        ("vendor", 1, "string"),
        ("name", 2, "string"),
        ("version", 3, "string"),
        ("hashes", 4, ["Hash"]),
        ("external_references", 5, ["ExternalReference"]),
    ],
    "EvidenceCopyright": [
        ("text", 1, "string"),
    ],
    "Evidence": [
        ("licenses", 1, ["LicenseChoice"]),
        ("copyright", 2, ["EvidenceCopyright"]),
    ],
    "ReleaseNotes": [
        ("type", 1, "string"),
        ("title", 2, "string"),
        ("description", 5, "string"),
    ],
    "Component": [
        ("type", 1, "Classification"),
        ("bom_ref", 3, "string"),
        ("supplier", 4, "OrganizationalEntity"),
        ("author", 5, "string"),
        ("publisher", 6, "string"),
        ("group", 7, "string"),
        ("name", 8, "string"),
        ("version", 9, "string"),
        ("description", 10, "string"),
        ("scope", 11, "Scope"),
        ("hashes", 12, ["Hash"]),
        ("licenses", 13, ["LicenseChoice"]),
        ("copyright", 14, "string"),
        ("cpe", 15, "string"),
        ("purl", 16, "string"),
        ("modified", 18, "bool"),
        ("external_references", 20, ["ExternalReference"]),
        ("components", 21, ["Component"]),
        ("properties", 22, ["Property"]),
        ("evidence", 23, ["Evidence"]),
        ("release_notes", 24, "ReleaseNotes"),
    ],
    "Service": [
        ("bom_ref", 1, "string"),
        ("provider", 2, "OrganizationalEntity"),
        ("group", 3, "string"),
        ("name", 4, "string"),
        ("version", 5, "string"),
        ("description", 6, "string"),
        ("endpoints", 7, ["string"]),
        ("authenticated", 8, "bool"),
        ("external_references", 12, ["ExternalReference"]),
        ("properties", 14, ["Property"]),
    ],
    "Dependency": [
        ("ref", 1, "string"),
        ("dependencies", 2, ["Dependency"]),
    ],
    "Composition": [
        ("aggregate", 1, "Aggregate"),
        ("assemblies", 2, ["string"]),
        ("dependencies", 3, ["string"]),
    ],
    "Source": [
        ("name", 1, "string"),
        ("url", 2, "string"),
    ],
    "VulnerabilityRating": [
        ("score", 2, "double"),
        ("severity", 3, "Severity"),
        ("method", 4, "ScoreMethod"),
    ],
    "VulnerabilityAffects": [
        ("ref", 1, "string"),
    ],
    "Vulnerability": [
        ("bom_ref", 1, "string"),
        ("id", 2, "string"),
        ("source", 3, "Source"),
        ("ratings", 5, ["VulnerabilityRating"]),
        ("description", 7, "string"),
        ("recommendation", 9, "string"),
        ("affects", 17, ["VulnerabilityAffects"]),
    ],
    "Metadata": [
        ("timestamp", 1, "Timestamp"),
        ("tools", 2, ["Tool"]),
        ("authors", 3, ["OrganizationalContact"]),
        ("component", 4, "Component"),
        ("manufacture", 5, "OrganizationalEntity"),
        ("supplier", 6, "OrganizationalEntity"),
        ("licenses", 7, ["LicenseChoice"]),
        ("properties", 8, ["Property"]),
    ],
    "Bom": [
        ("spec_version", 1, "string"),
        ("version", 2, "int32"),
        ("serial_number", 3, "string"),
        ("metadata", 4, "Metadata"),
        ("components", 5, ["Component"]),
        ("services", 6, ["Service"]),
        ("external_references", 7, ["ExternalReference"]),
        ("dependencies", 8, ["Dependency"]),
        ("compositions", 9, ["Composition"]),
        ("vulnerabilities", 10, ["Vulnerability"]),
    ],
}


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "bomrepo/cyclonedx.proto"
    file_proto.package = PACKAGE
    file_proto.syntax = "proto2"
    file_proto.dependency.append(timestamp_pb2.DESCRIPTOR.name)

    for enum_name, members in ENUMS.items():
        enum_proto = file_proto.enum_type.add()
        enum_proto.name = enum_name
        for value_name, number, _ in members:
            enum_proto.value.add(name=value_name, number=number)

    for message_name, fields in MESSAGES.items():
        message_proto = file_proto.message_type.add()
        message_proto.name = message_name
        for field_name, tag, field_type in fields:
            field_proto = message_proto.field.add()
            field_proto.name = field_name
            field_proto.number = tag
            if isinstance(field_type, list):
                field_proto.label = descriptor_pb2.FieldDescriptorProto.LABEL_REPEATED
                field_type = field_type[0]
            else:
                field_proto.label = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL
            if field_type in _SCALARS:
                field_proto.type = _SCALARS[field_type]
            elif field_type in ENUMS:
                field_proto.type = descriptor_pb2.FieldDescriptorProto.TYPE_ENUM
                field_proto.type_name = f".{PACKAGE}.{field_type}"
            else:
                field_proto.type = descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE
                field_proto.type_name = _WELL_KNOWN.get(field_type, f".{PACKAGE}.{field_type}")
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(timestamp_pb2.DESCRIPTOR.serialized_pb)
_pool.AddSerializedFile(_build_file_descriptor().SerializeToString())

MESSAGE_CLASSES: Dict[str, Type[Message]] = {
    name: message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))
    for name in MESSAGES
}

_ENUM_NUMBERS = {
    name: {value: number for _, number, value in members if value is not None}
    for name, members in ENUMS.items()
}
_ENUM_VALUES = {
    name: {number: value for _, number, value in members}
    for name, members in ENUMS.items()
}


# Field helpers

def _set(message: Message, name: str, value) -> None:
    if value is not None:
        setattr(message, name, value)


def _get(message: Message, name: str):
    return getattr(message, name) if message.HasField(name) else None


def _set_enum(message: Message, name: str, enum: str, value: Optional[str]) -> None:
    if value is None:
        return
    try:
        setattr(message, name, _ENUM_NUMBERS[enum][value])
    except KeyError:
        raise BomFormatError(f"Value {value!r} has no protobuf {enum} equivalent", format="protobuf")


def _get_enum(message: Message, name: str, enum: str) -> Optional[str]:
    if not message.HasField(name):
        return None
    return _ENUM_VALUES[enum].get(getattr(message, name))


def _set_timestamp(message: Message, text: str) -> None:
    timestamp = timestamp_pb2.Timestamp()
    try:
        timestamp.FromJsonString(text)
    except ValueError:
        # xs:dateTime allows an omitted offset; read it as UTC
        try:
            timestamp.FromDatetime(datetime.fromisoformat(text))
        except ValueError:
            raise BomFormatError(f"Invalid timestamp: {text!r}", format="protobuf")
    message.seconds = timestamp.seconds
    message.nanos = timestamp.nanos


def _get_timestamp(message: Message) -> str:
    return timestamp_pb2.Timestamp(seconds=message.seconds, nanos=message.nanos).ToJsonString()


# Serialisation

def _write_hash(h: Hash, message: Message) -> None:
    _set_enum(message, "alg", "HashAlg", h.alg)
    message.value = h.content


def _write_license(choice: LicenseChoice, message: Message) -> None:
    if choice.expression is not None:
        message.expression = choice.expression
        return
    message.license.SetInParent()
    _set(message.license, "id", choice.id)
    _set(message.license, "name", choice.name)
    _set(message.license, "url", choice.url)


def _write_reference(reference: ExternalReference, message: Message) -> None:
    _set_enum(message, "type", "ExternalReferenceType", reference.type)
    message.url = reference.url
    _set(message, "comment", reference.comment)


def _write_property(prop: Property, message: Message) -> None:
    message.name = prop.name
    _set(message, "value", prop.value)


def _write_contact(contact: OrganizationalContact, message: Message) -> None:
    _set(message, "name", contact.name)
    _set(message, "email", contact.email)
    _set(message, "phone", contact.phone)


def _write_entity(entity: OrganizationalEntity, message: Message) -> None:
    message.SetInParent()
    _set(message, "name", entity.name)
    message.url.extend(entity.urls)
    for contact in entity.contacts:
        _write_contact(contact, message.contact.add())


def _write_tool(tool: Tool, message: Message) -> None:
    _set(message, "vendor", tool.vendor)
    _set(message, "name", tool.name)
    _set(message, "version", tool.version)
    for h in tool.hashes:
        _write_hash(h, message.hashes.add())
    for reference in tool.external_references:
        _write_reference(reference, message.external_references.add())


def _write_component(component: Component, message: Message) -> None:
    _set_enum(message, "type", "Classification", component.type)
    _set(message, "bom_ref", component.bom_ref)
    if component.supplier is not None:
        _write_entity(component.supplier, message.supplier)
    _set(message, "author", component.author)
    _set(message, "publisher", component.publisher)
    _set(message, "group", component.group)
    message.name = component.name
    _set(message, "version", component.version)
    _set(message, "description", component.description)
    _set_enum(message, "scope", "Scope", component.scope)
    for h in component.hashes:
        _write_hash(h, message.hashes.add())
    for choice in component.licenses:
        _write_license(choice, message.licenses.add())
    _set(message, "copyright", component.copyright)
    _set(message, "cpe", component.cpe)
    _set(message, "purl", component.purl)
    _set(message, "modified", component.modified)
    for reference in component.external_references:
        _write_reference(reference, message.external_references.add())
    for child in component.components:
        _write_component(child, message.components.add())
    for prop in component.properties:
        _write_property(prop, message.properties.add())
    if component.evidence is not None:
        evidence = message.evidence.add()
        for choice in component.evidence.licenses:
            _write_license(choice, evidence.licenses.add())
        for text in component.evidence.copyright:
            evidence.copyright.add().text = text
    if component.release_notes is not None:
        notes = message.release_notes
        notes.type = component.release_notes.type
        _set(notes, "title", component.release_notes.title)
        _set(notes, "description", component.release_notes.description)


def _write_service(service: Service, message: Message) -> None:
    _set(message, "bom_ref", service.bom_ref)
    if service.provider is not None:
        _write_entity(service.provider, message.provider)
    _set(message, "group", service.group)
    message.name = service.name
    _set(message, "version", service.version)
    _set(message, "description", service.description)
    message.endpoints.extend(service.endpoints)
    _set(message, "authenticated", service.authenticated)
    for reference in service.external_references:
        _write_reference(reference, message.external_references.add())
    for prop in service.properties:
        _write_property(prop, message.properties.add())


def _write_vulnerability(vulnerability: Vulnerability, message: Message) -> None:
    _set(message, "bom_ref", vulnerability.bom_ref)
    _set(message, "id", vulnerability.id)
    if vulnerability.source_name is not None or vulnerability.source_url is not None:
        message.source.SetInParent()
        _set(message.source, "name", vulnerability.source_name)
        _set(message.source, "url", vulnerability.source_url)
    for rating in vulnerability.ratings:
        target = message.ratings.add()
        _set(target, "score", rating.score)
        _set_enum(target, "severity", "Severity", rating.severity)
        _set_enum(target, "method", "ScoreMethod", rating.method)
    _set(message, "description", vulnerability.description)
    _set(message, "recommendation", vulnerability.recommendation)
    for ref in vulnerability.affects:
        message.affects.add().ref = ref


def _write_metadata(metadata: Metadata, message: Message) -> None:
    message.SetInParent()
    if metadata.timestamp is not None:
        _set_timestamp(message.timestamp, metadata.timestamp)
    for tool in metadata.tools:
        _write_tool(tool, message.tools.add())
    for author in metadata.authors:
        _write_contact(author, message.authors.add())
    if metadata.component is not None:
        _write_component(metadata.component, message.component)
    if metadata.manufacture is not None:
        _write_entity(metadata.manufacture, message.manufacture)
    if metadata.supplier is not None:
        _write_entity(metadata.supplier, message.supplier)
    for choice in metadata.licenses:
        _write_license(choice, message.licenses.add())
    for prop in metadata.properties:
        _write_property(prop, message.properties.add())


def serialize(bom: Bom) -> bytes:
    """Serialise a BOM (already at its target version) to protobuf bytes."""
    if bom.spec_version not in SUPPORTED_VERSIONS:
        raise ValueError(f"Protobuf format does not support specification version {bom.spec_version.value}")
    message = MESSAGE_CLASSES["Bom"]()
    message.spec_version = bom.spec_version.value
    _set(message, "version", bom.version)
    _set(message, "serial_number", bom.serial_number)
    if bom.metadata is not None:
        _write_metadata(bom.metadata, message.metadata)
    for component in bom.components:
        _write_component(component, message.components.add())
    for service in bom.services:
        _write_service(service, message.services.add())
    for reference in bom.external_references:
        _write_reference(reference, message.external_references.add())
    for dependency in bom.dependencies:
        target = message.dependencies.add()
        target.ref = dependency.ref
        for ref in dependency.depends_on:
            target.dependencies.add().ref = ref
    for composition in bom.compositions:
        target = message.compositions.add()
        _set_enum(target, "aggregate", "Aggregate", composition.aggregate)
        target.assemblies.extend(composition.assemblies)
        target.dependencies.extend(composition.dependencies)
    for vulnerability in bom.vulnerabilities:
        _write_vulnerability(vulnerability, message.vulnerabilities.add())
    return message.SerializeToString(deterministic=True)


# Deserialisation

def _read_hash(message: Message) -> Hash:
    alg = _get_enum(message, "alg", "HashAlg")
    if alg is None:
        raise BomFormatError("Hash without a known algorithm", format="protobuf")
    return Hash(alg=alg, content=message.value)


def _read_license(message: Message) -> LicenseChoice:
    if message.HasField("expression"):
        return LicenseChoice(expression=message.expression)
    return LicenseChoice(
        id=_get(message.license, "id"),
        name=_get(message.license, "name"),
        url=_get(message.license, "url"),
    )


def _read_reference(message: Message) -> ExternalReference:
    return ExternalReference(
        type=_get_enum(message, "type", "ExternalReferenceType") or "other",
        url=message.url,
        comment=_get(message, "comment"),
    )


def _read_property(message: Message) -> Property:
    return Property(name=message.name, value=_get(message, "value"))


def _read_contact(message: Message) -> OrganizationalContact:
    return OrganizationalContact(
        name=_get(message, "name"),
        email=_get(message, "email"),
        phone=_get(message, "phone"),
    )


def _read_entity(parent: Message, name: str) -> Optional[OrganizationalEntity]:
    if not parent.HasField(name):
        return None
    message = getattr(parent, name)
    return OrganizationalEntity(
        name=_get(message, "name"),
        urls=list(message.url),
        contacts=[_read_contact(c) for c in message.contact],
    )


def _read_tool(message: Message) -> Tool:
    return Tool(
        vendor=_get(message, "vendor"),
        name=_get(message, "name"),
        version=_get(message, "version"),
        hashes=[_read_hash(h) for h in message.hashes],
        external_references=[_read_reference(r) for r in message.external_references],
    )


def _read_evidence(messages) -> Optional[ComponentEvidence]:
    # repeated on the wire; entries are merged
    if not messages:
        return None
    return ComponentEvidence(
        licenses=[_read_license(choice) for evidence in messages for choice in evidence.licenses],
        copyright=[c.text for evidence in messages for c in evidence.copyright],
    )


def _read_component(message: Message) -> Component:
    release_notes = None
    if message.HasField("release_notes"):
        notes = message.release_notes
        release_notes = ReleaseNotes(
            type=notes.type,
            title=_get(notes, "title"),
            description=_get(notes, "description"),
        )
    return Component(
        type=_get_enum(message, "type", "Classification") or "library",
        name=message.name,
        bom_ref=_get(message, "bom_ref"),
        supplier=_read_entity(message, "supplier"),
        author=_get(message, "author"),
        publisher=_get(message, "publisher"),
        group=_get(message, "group"),
        version=_get(message, "version"),
        description=_get(message, "description"),
        scope=_get_enum(message, "scope", "Scope"),
        hashes=[_read_hash(h) for h in message.hashes],
        licenses=[_read_license(l) for l in message.licenses],
        copyright=_get(message, "copyright"),
        cpe=_get(message, "cpe"),
        purl=_get(message, "purl"),
        modified=_get(message, "modified"),
        external_references=[_read_reference(r) for r in message.external_references],
        properties=[_read_property(p) for p in message.properties],
        components=[_read_component(c) for c in message.components],
        evidence=_read_evidence(message.evidence),
        release_notes=release_notes,
    )


def _read_service(message: Message) -> Service:
    return Service(
        name=message.name,
        bom_ref=_get(message, "bom_ref"),
        provider=_read_entity(message, "provider"),
        group=_get(message, "group"),
        version=_get(message, "version"),
        description=_get(message, "description"),
        endpoints=list(message.endpoints),
        authenticated=_get(message, "authenticated"),
        external_references=[_read_reference(r) for r in message.external_references],
        properties=[_read_property(p) for p in message.properties],
    )


def _read_vulnerability(message: Message) -> Vulnerability:
    return Vulnerability(
        id=_get(message, "id"),
        bom_ref=_get(message, "bom_ref"),
        source_name=_get(message.source, "name"),
        source_url=_get(message.source, "url"),
        ratings=[
            VulnerabilityRating(
                score=_get(r, "score"),
                severity=_get_enum(r, "severity", "Severity"),
                method=_get_enum(r, "method", "ScoreMethod"),
            )
            for r in message.ratings
        ],
        description=_get(message, "description"),
        recommendation=_get(message, "recommendation"),
        affects=[a.ref for a in message.affects],
    )


def _read_metadata(message: Message) -> Metadata:
    return Metadata(
        timestamp=_get_timestamp(message.timestamp) if message.HasField("timestamp") else None,
        tools=[_read_tool(t) for t in message.tools],
        authors=[_read_contact(a) for a in message.authors],
        component=_read_component(message.component) if message.HasField("component") else None,
        manufacture=_read_entity(message, "manufacture"),
        supplier=_read_entity(message, "supplier"),
        licenses=[_read_license(l) for l in message.licenses],
        properties=[_read_property(p) for p in message.properties],
    )


def deserialize(content: bytes) -> Tuple[Bom, SpecificationVersion]:
    """
    Deserialise a protobuf BOM.

    Args:
        content: Serialised Bom message

    Returns:
        Tuple of the Bom relabelled to the latest specification version and
        the version recorded in the message

    Raises:
        BomFormatError: If the content is not a supported protobuf BOM
    """
    message = MESSAGE_CLASSES["Bom"]()
    try:
        message.ParseFromString(content)
    except DecodeError as e:
        raise BomFormatError(f"Invalid protobuf document: {str(e)}", format="protobuf")

    spec_version = SpecificationVersion.parse(message.spec_version) if message.HasField("spec_version") else None
    if spec_version not in SUPPORTED_VERSIONS:
        raise BomFormatError(
            f"Unsupported protobuf specification version: {message.spec_version!r}", format="protobuf"
        )

    bom = Bom(
        serial_number=_get(message, "serial_number"),
        version=_get(message, "version"),
        spec_version=SpecificationVersion.latest(),
        metadata=_read_metadata(message.metadata) if message.HasField("metadata") else None,
        components=[_read_component(c) for c in message.components],
        services=[_read_service(s) for s in message.services],
        external_references=[_read_reference(r) for r in message.external_references],
        dependencies=[
            Dependency(ref=d.ref, depends_on=[child.ref for child in d.dependencies])
            for d in message.dependencies
        ],
        compositions=[
            Composition(
                aggregate=_get_enum(c, "aggregate", "Aggregate") or "not_specified",
                assemblies=list(c.assemblies),
                dependencies=list(c.dependencies),
            )
            for c in message.compositions
        ],
        vulnerabilities=[_read_vulnerability(v) for v in message.vulnerabilities],
    )
    return bom, spec_version