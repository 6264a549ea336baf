"""
CycloneDX XML codec (specification versions 1.0 to 1.4).

The specification version is carried by the document namespace,
http://cyclonedx.org/schema/bom/<version>.
"""

import xml.etree.ElementTree as ET
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

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

NAMESPACE_PREFIX = "http://cyclonedx.org/schema/bom/"

SUPPORTED_VERSIONS = tuple(SpecificationVersion)

T = TypeVar("T")


def namespace_for(version: SpecificationVersion) -> str:
    return f"{NAMESPACE_PREFIX}{version.value}"


class _Writer:
    """
    Builds unqualified elements.

    The root carries the target namespace as its default xmlns, so every
    element below it is in that namespace once parsed.
    """

    def sub(self, parent: ET.Element, name: str, text: Optional[str] = None,
            attrib: Optional[Dict[str, str]] = None) -> ET.Element:
        element = ET.SubElement(parent, name, attrib or {})
        if text is not None:
            element.text = text
        return element

    def text(self, parent: ET.Element, name: str, value: Optional[str]) -> None:
        if value is not None:
            self.sub(parent, name, value)

    def collection(self, parent: ET.Element, name: str, items: List[T],
                   write_item: Callable[[ET.Element, T], None]) -> None:
        if not items:
            return
        container = self.sub(parent, name)
        for item in items:
            write_item(container, item)

    def hash(self, parent: ET.Element, h: Hash) -> None:
        self.sub(parent, "hash", h.content, {"alg": h.alg})

    def license(self, parent: ET.Element, choice: LicenseChoice) -> None:
        if choice.expression is not None:
            self.sub(parent, "expression", choice.expression)
            return
        element = self.sub(parent, "license")
        if choice.id is not None:
            self.sub(element, "id", choice.id)
        else:
            self.text(element, "name", choice.name)
        self.text(element, "url", choice.url)

    def reference(self, parent: ET.Element, reference: ExternalReference) -> None:
        element = self.sub(parent, "reference", attrib={"type": reference.type})
        self.sub(element, "url", reference.url)
        self.text(element, "comment", reference.comment)

    def property(self, parent: ET.Element, prop: Property) -> None:
        self.sub(parent, "property", prop.value, {"name": prop.name})

    def contact(self, parent: ET.Element, name: str, contact: OrganizationalContact) -> None:
        element = self.sub(parent, name)
        self.text(element, "name", contact.name)
        self.text(element, "email", contact.email)
        self.text(element, "phone", contact.phone)

    def entity(self, parent: ET.Element, name: str, entity: Optional[OrganizationalEntity]) -> None:
        if entity is None:
            return
        element = self.sub(parent, name)
        self.text(element, "name", entity.name)
        for url in entity.urls:
            self.sub(element, "url", url)
        for contact in entity.contacts:
            self.contact(element, "contact", contact)

    def tool(self, parent: ET.Element, tool: Tool) -> None:
        element = self.sub(parent, "tool")
        self.text(element, "vendor", tool.vendor)
        self.text(element, "name", tool.name)
        self.text(element, "version", tool.version)
        self.collection(element, "hashes", tool.hashes, self.hash)
        self.collection(element, "externalReferences", tool.external_references, self.reference)

    def component(self, parent: ET.Element, component: Component) -> None:
        attrib = {"type": component.type}
        if component.bom_ref is not None:
            attrib["bom-ref"] = component.bom_ref
        element = self.sub(parent, "component", attrib=attrib)
        self.entity(element, "supplier", component.supplier)
        self.text(element, "author", component.author)
        self.text(element, "publisher", component.publisher)
        self.text(element, "group", component.group)
        self.sub(element, "name", component.name)
        self.text(element, "version", component.version)
        self.text(element, "description", component.description)
        self.text(element, "scope", component.scope)
        self.collection(element, "hashes", component.hashes, self.hash)
        self.collection(element, "licenses", component.licenses, self.license)
        self.text(element, "copyright", component.copyright)
        self.text(element, "cpe", component.cpe)
        self.text(element, "purl", component.purl)
        if component.modified is not None:
            self.sub(element, "modified", "true" if component.modified else "false")
        self.collection(element, "externalReferences", component.external_references, self.reference)
        self.collection(element, "properties", component.properties, self.property)
        self.collection(element, "components", component.components, self.component)
        if component.evidence is not None:
            evidence = self.sub(element, "evidence")
            self.collection(evidence, "licenses", component.evidence.licenses, self.license)
            self.collection(evidence, "copyright", component.evidence.copyright,
                            lambda parent, text: self.sub(parent, "text", text))
        if component.release_notes is not None:
            notes = self.sub(element, "releaseNotes")
            self.sub(notes, "type", component.release_notes.type)
            self.text(notes, "title", component.release_notes.title)
            self.text(notes, "description", component.release_notes.description)

    def service(self, parent: ET.Element, service: Service) -> None:
        attrib = {"bom-ref": service.bom_ref} if service.bom_ref is not None else {}
        element = self.sub(parent, "service", attrib=attrib)
        self.entity(element, "provider", service.provider)
        self.text(element, "group", service.group)
        self.sub(element, "name", service.name)
        self.text(element, "version", service.version)
        self.text(element, "description", service.description)
        self.collection(element, "endpoints", service.endpoints,
                        lambda parent, url: self.sub(parent, "endpoint", url))
        if service.authenticated is not None:
            self.sub(element, "authenticated", "true" if service.authenticated else "false")
        self.collection(element, "externalReferences", service.external_references, self.reference)
        self.collection(element, "properties", service.properties, self.property)

    def dependency(self, parent: ET.Element, dependency: Dependency) -> None:
        element = self.sub(parent, "dependency", attrib={"ref": dependency.ref})
        for ref in dependency.depends_on:
            self.sub(element, "dependency", attrib={"ref": ref})

    def composition(self, parent: ET.Element, composition: Composition) -> None:
        element = self.sub(parent, "composition")
        self.sub(element, "aggregate", composition.aggregate)
        self.collection(element, "assemblies", composition.assemblies,
                        lambda parent, ref: self.sub(parent, "assembly", attrib={"ref": ref}))
        self.collection(element, "dependencies", composition.dependencies,
                        lambda parent, ref: self.sub(parent, "dependency", attrib={"ref": ref}))

    def vulnerability(self, parent: ET.Element, vulnerability: Vulnerability) -> None:
        attrib = {"bom-ref": vulnerability.bom_ref} if vulnerability.bom_ref is not None else {}
        element = self.sub(parent, "vulnerability", attrib=attrib)
        self.text(element, "id", vulnerability.id)
        if vulnerability.source_name is not None or vulnerability.source_url is not None:
            source = self.sub(element, "source")
            self.text(source, "name", vulnerability.source_name)
            self.text(source, "url", vulnerability.source_url)
        self.collection(element, "ratings", vulnerability.ratings, self.rating)
        self.text(element, "description", vulnerability.description)
        self.text(element, "recommendation", vulnerability.recommendation)
        self.collection(element, "affects", vulnerability.affects, self.affect)

    def rating(self, parent: ET.Element, rating: VulnerabilityRating) -> None:
        element = self.sub(parent, "rating")
        if rating.score is not None:
            self.sub(element, "score", repr(float(rating.score)))
        self.text(element, "severity", rating.severity)
        self.text(element, "method", rating.method)

    def affect(self, parent: ET.Element, ref: str) -> None:
        target = self.sub(parent, "target")
        self.sub(target, "ref", ref)

    def metadata(self, parent: ET.Element, metadata: Metadata) -> None:
        element = self.sub(parent, "metadata")
        self.text(element, "timestamp", metadata.timestamp)
        self.collection(element, "tools", metadata.tools, self.tool)
        self.collection(element, "authors", metadata.authors,
                        lambda parent, contact: self.contact(parent, "author", contact))
        if metadata.component is not None:
            self.component(element, metadata.component)
        self.entity(element, "manufacture", metadata.manufacture)
        self.entity(element, "supplier", metadata.supplier)
        self.collection(element, "licenses", metadata.licenses, self.license)
        self.collection(element, "properties", metadata.properties, self.property)


def serialize(bom: Bom) -> bytes:
    """Serialise a BOM (already at its target version) to XML bytes."""
    writer = _Writer()

    attrib = {
        "xmlns": namespace_for(bom.spec_version),
        "version": str(bom.version if bom.version is not None else 1),
    }
    if bom.serial_number is not None:
        attrib["serialNumber"] = bom.serial_number
    root = ET.Element("bom", attrib)

    if bom.metadata is not None:
        writer.metadata(root, bom.metadata)
    # components is a required element in 1.0
    if bom.components or bom.spec_version == SpecificationVersion.V1_0:
        container = writer.sub(root, "components")
        for component in bom.components:
            writer.component(container, component)
    writer.collection(root, "services", bom.services, writer.service)
    writer.collection(root, "externalReferences", bom.external_references, writer.reference)
    writer.collection(root, "dependencies", bom.dependencies, writer.dependency)
    writer.collection(root, "compositions", bom.compositions, writer.composition)
    writer.collection(root, "vulnerabilities", bom.vulnerabilities, writer.vulnerability)

    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


class _Reader:
    """Reads namespaced elements for one source namespace."""

    def __init__(self, namespace: str):
        self.ns = namespace

    def tag(self, name: str) -> str:
        return f"{{{self.ns}}}{name}"

    def find(self, parent: ET.Element, name: str) -> Optional[ET.Element]:
        return parent.find(self.tag(name))

    def text(self, parent: ET.Element, name: str) -> Optional[str]:
        element = parent.find(self.tag(name))
        if element is None:
            return None
        return element.text or ""

    def flag(self, parent: ET.Element, name: str) -> Optional[bool]:
        value = self.text(parent, name)
        if value is None:
            return None
        return value.strip().lower() == "true"

    def items(self, parent: ET.Element, container: str, item: str) -> List[ET.Element]:
        element = parent.find(self.tag(container))
        if element is None:
            return []
        return element.findall(self.tag(item))

    def hash(self, element: ET.Element) -> Hash:
        return Hash(alg=element.get("alg", ""), content=(element.text or "").strip())

    def licenses(self, parent: ET.Element) -> List[LicenseChoice]:
        container = parent.find(self.tag("licenses"))
        if container is None:
            return []
        result = []
        for element in container:
            if element.tag == self.tag("expression"):
                result.append(LicenseChoice(expression=element.text or ""))
            elif element.tag == self.tag("license"):
                result.append(LicenseChoice(
                    id=self.text(element, "id"),
                    name=self.text(element, "name"),
                    url=self.text(element, "url"),
                ))
        return result

    def references(self, parent: ET.Element) -> List[ExternalReference]:
        return [
            ExternalReference(type=e.get("type", "other"), url=self.text(e, "url") or "",
                              comment=self.text(e, "comment"))
            for e in self.items(parent, "externalReferences", "reference")
        ]

    def properties(self, parent: ET.Element) -> List[Property]:
        return [Property(name=e.get("name", ""), value=e.text) for e in self.items(parent, "properties", "property")]

    def contact(self, element: ET.Element) -> OrganizationalContact:
        return OrganizationalContact(
            name=self.text(element, "name"),
            email=self.text(element, "email"),
            phone=self.text(element, "phone"),
        )

    def entity(self, parent: ET.Element, name: str) -> Optional[OrganizationalEntity]:
        element = self.find(parent, name)
        if element is None:
            return None
        return OrganizationalEntity(
            name=self.text(element, "name"),
            urls=[e.text or "" for e in element.findall(self.tag("url"))],
            contacts=[self.contact(e) for e in element.findall(self.tag("contact"))],
        )

    def tool(self, element: ET.Element) -> Tool:
        return Tool(
            vendor=self.text(element, "vendor"),
            name=self.text(element, "name"),
            version=self.text(element, "version"),
            hashes=[self.hash(e) for e in self.items(element, "hashes", "hash")],
            external_references=self.references(element),
        )

    def component(self, element: ET.Element) -> Component:
        evidence = None
        evidence_element = self.find(element, "evidence")
        if evidence_element is not None:
            evidence = ComponentEvidence(
                licenses=self.licenses(evidence_element),
                copyright=[e.text or "" for e in self.items(evidence_element, "copyright", "text")],
            )
        release_notes = None
        notes_element = self.find(element, "releaseNotes")
        if notes_element is not None:
            release_notes = ReleaseNotes(
                type=self.text(notes_element, "type") or "",
                title=self.text(notes_element, "title"),
                description=self.text(notes_element, "description"),
            )
        return Component(
            type=element.get("type", "library"),
            name=self.text(element, "name") or "",
            bom_ref=element.get("bom-ref"),
            supplier=self.entity(element, "supplier"),
            author=self.text(element, "author"),
            publisher=self.text(element, "publisher"),
            group=self.text(element, "group"),
            version=self.text(element, "version"),
            description=self.text(element, "description"),
            scope=self.text(element, "scope"),
            hashes=[self.hash(e) for e in self.items(element, "hashes", "hash")],
            licenses=self.licenses(element),
            copyright=self.text(element, "copyright"),
            cpe=self.text(element, "cpe"),
            purl=self.text(element, "purl"),
            modified=self.flag(element, "modified"),
            external_references=self.references(element),
            properties=self.properties(element),
            components=[self.component(e) for e in self.items(element, "components", "component")],
            evidence=evidence,
            release_notes=release_notes,
        )

    def service(self, element: ET.Element) -> Service:
        return Service(
            name=self.text(element, "name") or "",
            bom_ref=element.get("bom-ref"),
            provider=self.entity(element, "provider"),
            group=self.text(element, "group"),
            version=self.text(element, "version"),
            description=self.text(element, "description"),
            endpoints=[e.text or "" for e in self.items(element, "endpoints", "endpoint")],
            authenticated=self.flag(element, "authenticated"),
            external_references=self.references(element),
            properties=self.properties(element),
        )

    def vulnerability(self, element: ET.Element) -> Vulnerability:
        source = self.find(element, "source")
        ratings = []
        for rating in self.items(element, "ratings", "rating"):
            score = self.text(rating, "score")
            ratings.append(VulnerabilityRating(
                score=float(score) if score else None,
                severity=self.text(rating, "severity"),
                method=self.text(rating, "method"),
            ))
        return Vulnerability(
            id=self.text(element, "id"),
            bom_ref=element.get("bom-ref"),
            source_name=self.text(source, "name") if source is not None else None,
            source_url=self.text(source, "url") if source is not None else None,
            ratings=ratings,
            description=self.text(element, "description"),
            recommendation=self.text(element, "recommendation"),
            affects=[self.text(t, "ref") or "" for t in self.items(element, "affects", "target")],
        )

    def metadata(self, element: ET.Element) -> Metadata:
        component_element = self.find(element, "component")
        return Metadata(
            timestamp=self.text(element, "timestamp"),
            tools=[self.tool(e) for e in self.items(element, "tools", "tool")],
            authors=[self.contact(e) for e in self.items(element, "authors", "author")],
            component=self.component(component_element) if component_element is not None else None,
            manufacture=self.entity(element, "manufacture"),
            supplier=self.entity(element, "supplier"),
            licenses=self.licenses(element),
            properties=self.properties(element),
        )


def deserialize(content: bytes) -> Tuple[Bom, SpecificationVersion]:
    """
    Deserialise CycloneDX XML of any supported version.

    Args:
        content: XML document bytes

    Returns:
        Tuple of the Bom relabelled to the latest specification version and
        the version named by the document namespace

    Raises:
        BomFormatError: If the content is not a CycloneDX XML BOM
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise BomFormatError(f"Invalid XML document: {str(e)}", format="xml")

    if not root.tag.startswith(f"{{{NAMESPACE_PREFIX}") or not root.tag.endswith("}bom"):
        raise BomFormatError(f"Unexpected root element: {root.tag}", format="xml")

    namespace = root.tag[1:root.tag.index("}")]
    declared = SpecificationVersion.parse(namespace[len(NAMESPACE_PREFIX):])
    if declared is None:
        raise BomFormatError(f"Unsupported CycloneDX namespace: {namespace}", format="xml")

    reader = _Reader(namespace)
    metadata_element = reader.find(root, "metadata")
    version = root.get("version")
    if version is not None and not (version.strip().isdecimal() and 1 <= int(version) <= MAX_BOM_VERSION):
        raise BomFormatError(f"BOM version must be an integer from 1 to {MAX_BOM_VERSION}", format="xml")

    try:
        bom = Bom(
            serial_number=root.get("serialNumber"),
            version=int(version) if version is not None else None,
            spec_version=SpecificationVersion.latest(),
            metadata=reader.metadata(metadata_element) if metadata_element is not None else None,
            components=[reader.component(e) for e in reader.items(root, "components", "component")],
            services=[reader.service(e) for e in reader.items(root, "services", "service")],
            external_references=reader.references(root),
            dependencies=[
                Dependency(ref=e.get("ref", ""),
                           depends_on=[d.get("ref", "") for d in e.findall(reader.tag("dependency"))])
                for e in reader.items(root, "dependencies", "dependency")
            ],
            compositions=[
                Composition(
                    aggregate=reader.text(e, "aggregate") or "unknown",
                    assemblies=[a.get("ref", "") for a in reader.items(e, "assemblies", "assembly")],
                    dependencies=[d.get("ref", "") for d in reader.items(e, "dependencies", "dependency")],
                )
                for e in reader.items(root, "compositions", "composition")
            ],
            vulnerabilities=[reader.vulnerability(e) for e in reader.items(root, "vulnerabilities", "vulnerability")],
        )
    except ValueError as e:
        raise BomFormatError(f"Malformed CycloneDX XML document: {str(e)}", format="xml")
    return bom, declared
