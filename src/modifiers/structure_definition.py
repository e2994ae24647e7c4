"""StructureDefinition modifiers applied before snapshot generation."""

from __future__ import annotations

import logging

from validation_package.resources import StructureDefinition

from .base import Modifier

logger = logging.getLogger(__name__)


class StructureDefinitionModifier(Modifier[StructureDefinition]):
    """Modifier with a single hook run before the snapshot is generated."""

    def pre_snapshot(self, definition: StructureDefinition) -> StructureDefinition:
        return definition

    def pre_transform(self, resource: StructureDefinition) -> StructureDefinition:
        return self.pre_snapshot(resource)


class ClosedTypeSlicingRemover(StructureDefinitionModifier):
    """Drop ``type`` discriminators from closed slicings in the differential.

    A slicing left without any discriminator is removed altogether.
    """

    name = "closed-type-slicing-remover"

    def pre_snapshot(self, definition: StructureDefinition) -> StructureDefinition:
        result = definition.copy()
        for element in result.differential_elements():
            slicing = element.get("slicing")
            if not slicing or slicing.get("rules") != "closed":
                continue

            discriminators = [d for d in slicing.get("discriminator") or [] if d.get("type") != "type"]
            if len(discriminators) == len(slicing.get("discriminator") or []):
                continue

            logger.debug("Removing closed type slicing of %s in %s", element.get("id") or element.get("path"), definition.url)
            if discriminators:
                slicing["discriminator"] = discriminators
            else:
                del element["slicing"]
        return result


class SliceMinFixer(StructureDefinitionModifier):
    """Set ``min: 0`` on differential slices without explicit minimum cardinality."""

    name = "slice-min-fixer"

    def pre_snapshot(self, definition: StructureDefinition) -> StructureDefinition:
        result = definition.copy()
        for element in result.differential_elements():
            if element.get("sliceName") and "min" not in element:
                element["min"] = 0
        return result


class IdentifierRemover(StructureDefinitionModifier):
    name = "identifier-remover"

    def pre_snapshot(self, definition: StructureDefinition) -> StructureDefinition:
        if "identifier" not in definition.data:
            return definition
        result = definition.copy()
        del result.data["identifier"]
        return result
