"""
Schema downgrade chain.

Each step narrows a BOM from one specification version to the version
directly below it. Steps never mutate their input. Folding the chain from
the latest version to any target is the only way older versions are
produced; storage always holds the latest version.
"""

import copy
from typing import Callable, Dict, Iterator, List

from ..models import (
    Bom,
    Component,
    ExternalReference,
    SpecificationVersion,
    COMPONENT_TYPES_V1_0,
    COMPONENT_TYPES_V1_1,
    HASH_ALGORITHMS_V1_0,
    LicenseChoice,
)

DowngradeStep = Callable[[Bom], None]


def _walk_components(components: List[Component]) -> Iterator[Component]:
    for component in components:
        yield component
        yield from _walk_components(component.components)


def _all_components(bom: Bom) -> Iterator[Component]:
    if bom.metadata is not None and bom.metadata.component is not None:
        yield from _walk_components([bom.metadata.component])
    yield from _walk_components(bom.components)


def _all_external_reference_lists(bom: Bom) -> Iterator[List[ExternalReference]]:
    yield bom.external_references
    for component in _all_components(bom):
        yield component.external_references
    for service in bom.services:
        yield service.external_references
    if bom.metadata is not None:
        for tool in bom.metadata.tools:
            yield tool.external_references


def _v1_4_to_v1_3(bom: Bom) -> None:
    bom.vulnerabilities = []
    if bom.metadata is not None:
        for tool in bom.metadata.tools:
            tool.external_references = []
    for component in _all_components(bom):
        component.release_notes = None
    for references in _all_external_reference_lists(bom):
        for reference in references:
            if reference.type == "release-notes":
                reference.type = "other"


def _v1_3_to_v1_2(bom: Bom) -> None:
    bom.compositions = []
    if bom.metadata is not None:
        bom.metadata.properties = []
        bom.metadata.licenses = []
    for component in _all_components(bom):
        component.properties = []
        component.evidence = None
    for service in bom.services:
        service.properties = []


def _v1_2_to_v1_1(bom: Bom) -> None:
    # metadata.component is dropped along with the metadata
    bom.metadata = None
    bom.dependencies = []
    bom.services = []
    for component in _all_components(bom):
        if component.type not in COMPONENT_TYPES_V1_1:
            component.type = "application"
        component.supplier = None
        component.author = None


def _v1_1_to_v1_0(bom: Bom) -> None:
    bom.serial_number = None
    bom.external_references = []
    for component in _all_components(bom):
        component.bom_ref = None
        if component.type not in COMPONENT_TYPES_V1_0:
            component.type = "application"
        component.hashes = [h for h in component.hashes if h.alg in HASH_ALGORITHMS_V1_0]
        component.external_references = []
        component.licenses = [
            LicenseChoice(id=choice.id, name=choice.name)
            for choice in component.licenses
            if choice.expression is None and (choice.id or choice.name)
        ]
        if component.modified is None:
            component.modified = False


# Keyed by the version each step starts from
DOWNGRADE_STEPS: Dict[SpecificationVersion, DowngradeStep] = {
    SpecificationVersion.V1_4: _v1_4_to_v1_3,
    SpecificationVersion.V1_3: _v1_3_to_v1_2,
    SpecificationVersion.V1_2: _v1_2_to_v1_1,
    SpecificationVersion.V1_1: _v1_1_to_v1_0,
}


def previous_version(version: SpecificationVersion) -> SpecificationVersion:
    """Get the specification version directly below the given one."""
    if version.ordinal == 0:
        raise ValueError(f"No specification version below {version.value}")
    return list(SpecificationVersion)[version.ordinal - 1]


def downgrade_step(bom: Bom) -> Bom:
    """
    Apply a single downgrade step.

    Args:
        bom: BOM at some version above 1.0

    Returns:
        New BOM one specification version lower
    """
    result = copy.deepcopy(bom)
    DOWNGRADE_STEPS[bom.spec_version](result)
    result.spec_version = previous_version(bom.spec_version)
    return result


def downgrade_to(bom: Bom, target: SpecificationVersion) -> Bom:
    """
    Fold the downgrade chain from the BOM's version down to target.

    Args:
        bom: BOM to convert, left unmodified
        target: Specification version to produce

    Returns:
        New BOM at the target version

    Raises:
        ValueError: If target is newer than the BOM's version
    """
    if target > bom.spec_version:
        raise ValueError(
            f"Cannot upgrade a BOM from {bom.spec_version.value} to {target.value}"
        )

    result = copy.deepcopy(bom)
    while result.spec_version > target:
        DOWNGRADE_STEPS[result.spec_version](result)
        result.spec_version = previous_version(result.spec_version)
    return result
