"""
CycloneDX JSON codec (specification versions 1.2 to 1.4).
"""

import json
from typing import Any, Dict, List, Optional, Tuple

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
    MAX_BOM_VERSION,
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

SUPPORTED_VERSIONS = (
    SpecificationVersion.V1_2,
    SpecificationVersion.V1_3,
    SpecificationVersion.V1_4,
)


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values and empty lists."""
    return {k: v for k, v in data.items() if v is not None and v != []}


# Serialisation

def _hash(h: Hash) -> Dict[str, Any]:
    return {"alg": h.alg, "content": h.content}


def _license(choice: LicenseChoice) -> Dict[str, Any]:
    if choice.expression is not None:
        return {"expression": choice.expression}
    return {"license": _compact({"id": choice.id, "name": choice.name, "url": choice.url})}


def _reference(reference: ExternalReference) -> Dict[str, Any]:
    return _compact({"type": reference.type, "url": reference.url, "comment": reference.comment})


def _property(prop: Property) -> Dict[str, Any]:
    return _compact({"name": prop.name, "value": prop.value})


def _contact(contact: OrganizationalContact) -> Dict[str, Any]:
    return _compact({"name": contact.name, "email": contact.email, "phone": contact.phone})


def _entity(entity: Optional[OrganizationalEntity]) -> Optional[Dict[str, Any]]:
    if entity is None:
        return None
    return _compact({
        "name": entity.name,
        "url": entity.urls,
        "contact": [_contact(c) for c in entity.contacts],
    })


def _tool(tool: Tool) -> Dict[str, Any]:
    return _compact({
        "vendor": tool.vendor,
        "name": tool.name,
        "version": tool.version,
        "hashes": [_hash(h) for h in tool.hashes],
        "externalReferences": [_reference(r) for r in tool.external_references],
    })


def _component(component: Component) -> Dict[str, Any]:
    evidence = None
    if component.evidence is not None:
        evidence = _compact({
            "licenses": [_license(l) for l in component.evidence.licenses],
            "copyright": [{"text": text} for text in component.evidence.copyright],
        })
    release_notes = None
    if component.release_notes is not None:
        release_notes = _compact({
            "type": component.release_notes.type,
            "title": component.release_notes.title,
            "description": component.release_notes.description,
        })
    return _compact({
        "type": component.type,
        "bom-ref": component.bom_ref,
        "supplier": _entity(component.supplier),
        "author": component.author,
        "publisher": component.publisher,
        "group": component.group,
        "name": component.name,
        "version": component.version,
        "description": component.description,
        "scope": component.scope,
        "hashes": [_hash(h) for h in component.hashes],
        "licenses": [_license(l) for l in component.licenses],
        "copyright": component.copyright,
        "cpe": component.cpe,
        "purl": component.purl,
        "modified": component.modified,
        "externalReferences": [_reference(r) for r in component.external_references],
        "properties": [_property(p) for p in component.properties],
        "components": [_component(c) for c in component.components],
        "evidence": evidence,
        "releaseNotes": release_notes,
    })


def _service(service: Service) -> Dict[str, Any]:
    return _compact({
        "bom-ref": service.bom_ref,
        "provider": _entity(service.provider),
        "group": service.group,
        "name": service.name,
        "version": service.version,
        "description": service.description,
        "endpoints": service.endpoints,
        "authenticated": service.authenticated,
        "externalReferences": [_reference(r) for r in service.external_references],
        "properties": [_property(p) for p in service.properties],
    })


def _vulnerability(vulnerability: Vulnerability) -> Dict[str, Any]:
    source = _compact({"name": vulnerability.source_name, "url": vulnerability.source_url})
    return _compact({
        "bom-ref": vulnerability.bom_ref,
        "id": vulnerability.id,
        "source": source or None,
        "ratings": [
            _compact({"score": r.score, "severity": r.severity, "method": r.method})
            for r in vulnerability.ratings
        ],
        "description": vulnerability.description,
        "recommendation": vulnerability.recommendation,
        "affects": [{"ref": ref} for ref in vulnerability.affects],
    })


def bom_to_dict(bom: Bom) -> Dict[str, Any]:
    """Convert a BOM to its CycloneDX JSON object form."""
    metadata = None
    if bom.metadata is not None:
        m = bom.metadata
        metadata = _compact({
            "timestamp": m.timestamp,
            "tools": [_tool(t) for t in m.tools],
            "authors": [_contact(a) for a in m.authors],
            "component": _component(m.component) if m.component is not None else None,
            "manufacture": _entity(m.manufacture),
            "supplier": _entity(m.supplier),
            "licenses": [_license(l) for l in m.licenses],
            "properties": [_property(p) for p in m.properties],
        })
    data = {
        "bomFormat": "CycloneDX",
        "specVersion": bom.spec_version.value,
        "serialNumber": bom.serial_number,
        "version": bom.version,
        "metadata": metadata,
        "components": [_component(c) for c in bom.components],
        "services": [_service(s) for s in bom.services],
        "externalReferences": [_reference(r) for r in bom.external_references],
        "dependencies": [
            {"ref": d.ref, "dependsOn": list(d.depends_on)} for d in bom.dependencies
        ],
        "compositions": [
            _compact({"aggregate": c.aggregate, "assemblies": c.assemblies, "dependencies": c.dependencies})
            for c in bom.compositions
        ],
        "vulnerabilities": [_vulnerability(v) for v in bom.vulnerabilities],
    }
    return _compact(data)


def serialize(bom: Bom) -> bytes:
    """Serialise a BOM (already at its target version) to JSON bytes."""
    if bom.spec_version not in SUPPORTED_VERSIONS:
        raise ValueError(f"JSON format does not support specification version {bom.spec_version.value}")
    return json.dumps(bom_to_dict(bom), indent=2, ensure_ascii=False).encode("utf-8")


# Deserialisation

def _list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def _parse_version(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_BOM_VERSION:
        raise BomFormatError(f"BOM version must be an integer from 1 to {MAX_BOM_VERSION}", format="json")
    return value


def _parse_hash(data: Dict[str, Any]) -> Hash:
    return Hash(alg=data["alg"], content=data["content"])


def _parse_license(data: Dict[str, Any]) -> LicenseChoice:
    if "expression" in data:
        return LicenseChoice(expression=data["expression"])
    license_data = data.get("license", {})
    return LicenseChoice(id=license_data.get("id"), name=license_data.get("name"), url=license_data.get("url"))


def _parse_reference(data: Dict[str, Any]) -> ExternalReference:
    return ExternalReference(type=data["type"], url=data["url"], comment=data.get("comment"))


def _parse_property(data: Dict[str, Any]) -> Property:
    return Property(name=data["name"], value=data.get("value"))


def _parse_contact(data: Dict[str, Any]) -> OrganizationalContact:
    return OrganizationalContact(name=data.get("name"), email=data.get("email"), phone=data.get("phone"))


def _parse_entity(data: Optional[Dict[str, Any]]) -> Optional[OrganizationalEntity]:
    if data is None:
        return None
    return OrganizationalEntity(
        name=data.get("name"),
        urls=list(_list(data, "url")),
        contacts=[_parse_contact(c) for c in _list(data, "contact")],
    )


def _parse_tool(data: Dict[str, Any]) -> Tool:
    return Tool(
        vendor=data.get("vendor"),
        name=data.get("name"),
        version=data.get("version"),
        hashes=[_parse_hash(h) for h in _list(data, "hashes")],
        external_references=[_parse_reference(r) for r in _list(data, "externalReferences")],
    )


def _parse_component(data: Dict[str, Any]) -> Component:
    evidence = None
    if "evidence" in data:
        evidence = ComponentEvidence(
            licenses=[_parse_license(l) for l in _list(data["evidence"], "licenses")],
            copyright=[c["text"] for c in _list(data["evidence"], "copyright")],
        )
    release_notes = None
    if "releaseNotes" in data:
        notes = data["releaseNotes"]
        release_notes = ReleaseNotes(type=notes["type"], title=notes.get("title"),
                                     description=notes.get("description"))
    return Component(
        type=data.get("type", "library"),
        name=data.get("name", ""),
        bom_ref=data.get("bom-ref"),
        supplier=_parse_entity(data.get("supplier")),
        author=data.get("author"),
        publisher=data.get("publisher"),
        group=data.get("group"),
        version=data.get("version"),
        description=data.get("description"),
        scope=data.get("scope"),
        hashes=[_parse_hash(h) for h in _list(data, "hashes")],
        licenses=[_parse_license(l) for l in _list(data, "licenses")],
        copyright=data.get("copyright"),
        cpe=data.get("cpe"),
        purl=data.get("purl"),
        modified=data.get("modified"),
        external_references=[_parse_reference(r) for r in _list(data, "externalReferences")],
        properties=[_parse_property(p) for p in _list(data, "properties")],
        components=[_parse_component(c) for c in _list(data, "components")],
        evidence=evidence,
        release_notes=release_notes,
    )


def _parse_service(data: Dict[str, Any]) -> Service:
    return Service(
        name=data.get("name", ""),
        bom_ref=data.get("bom-ref"),
        provider=_parse_entity(data.get("provider")),
        group=data.get("group"),
        version=data.get("version"),
        description=data.get("description"),
        endpoints=list(_list(data, "endpoints")),
        authenticated=data.get("authenticated"),
        external_references=[_parse_reference(r) for r in _list(data, "externalReferences")],
        properties=[_parse_property(p) for p in _list(data, "properties")],
    )


def _parse_vulnerability(data: Dict[str, Any]) -> Vulnerability:
    source = data.get("source", {})
    return Vulnerability(
        id=data.get("id"),
        bom_ref=data.get("bom-ref"),
        source_name=source.get("name"),
        source_url=source.get("url"),
        ratings=[
            VulnerabilityRating(score=r.get("score"), severity=r.get("severity"), method=r.get("method"))
            for r in _list(data, "ratings")
        ],
        description=data.get("description"),
        recommendation=data.get("recommendation"),
        affects=[a["ref"] for a in _list(data, "affects")],
    )


def bom_from_dict(data: Dict[str, Any]) -> Bom:
    """Build a BOM from its CycloneDX JSON object form."""
    metadata = None
    if "metadata" in data:
        m = data["metadata"]
        metadata = Metadata(
            timestamp=m.get("timestamp"),
            tools=[_parse_tool(t) for t in _list(m, "tools")],
            authors=[_parse_contact(a) for a in _list(m, "authors")],
            component=_parse_component(m["component"]) if "component" in m else None,
            manufacture=_parse_entity(m.get("manufacture")),
            supplier=_parse_entity(m.get("supplier")),
            licenses=[_parse_license(l) for l in _list(m, "licenses")],
            properties=[_parse_property(p) for p in _list(m, "properties")],
        )
    return Bom(
        serial_number=data.get("serialNumber"),
        version=_parse_version(data.get("version")),
        spec_version=SpecificationVersion.latest(),
        metadata=metadata,
        components=[_parse_component(c) for c in _list(data, "components")],
        services=[_parse_service(s) for s in _list(data, "services")],
        external_references=[_parse_reference(r) for r in _list(data, "externalReferences")],
        dependencies=[
            Dependency(ref=d["ref"], depends_on=list(_list(d, "dependsOn")))
            for d in _list(data, "dependencies")
        ],
        compositions=[
            Composition(
                aggregate=c.get("aggregate", "unknown"),
                assemblies=list(_list(c, "assemblies")),
                dependencies=list(_list(c, "dependencies")),
            )
            for c in _list(data, "compositions")
        ],
        vulnerabilities=[_parse_vulnerability(v) for v in _list(data, "vulnerabilities")],
    )


def deserialize(content: bytes) -> Tuple[Bom, SpecificationVersion]:
    """
    Deserialise CycloneDX JSON.

    Args:
        content: UTF-8 JSON document

    Returns:
        Tuple of the Bom relabelled to the latest specification version and
        the version the document declared

    Raises:
        BomFormatError: If the content is not a CycloneDX JSON BOM
    """
    try:
        data = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BomFormatError(f"Invalid JSON document: {str(e)}", format="json")

    if not isinstance(data, dict) or data.get("bomFormat") != "CycloneDX":
        raise BomFormatError("Document is not a CycloneDX BOM", format="json")

    declared = SpecificationVersion.parse(str(data.get("specVersion", "")))
    if declared not in SUPPORTED_VERSIONS:
        raise BomFormatError(f"Unsupported JSON specification version: {data.get('specVersion')!r}", format="json")

    try:
        return bom_from_dict(data), declared
    except (KeyError, TypeError, AttributeError) as e:
        raise BomFormatError(f"Malformed CycloneDX JSON document: {e!r}", format="json")
