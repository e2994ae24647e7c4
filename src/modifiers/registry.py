"""Configuration identifiers of the built-in modifiers."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List

from common.errors import ConfigurationError
from validation_package.resources import StructureDefinition, ValueSet

from .base import Modifier, ModifierPipeline
from .structure_definition import (
    ClosedTypeSlicingRemover,
    IdentifierRemover,
    SliceMinFixer,
    StructureDefinitionModifier,
)
from .value_set import ValueSetModifier, VersionIncluder

VALUE_SET_MODIFIERS: Dict[str, Callable[[], ValueSetModifier]] = {
    VersionIncluder.name: VersionIncluder,
}

STRUCTURE_DEFINITION_MODIFIERS: Dict[str, Callable[[], StructureDefinitionModifier]] = {
    ClosedTypeSlicingRemover.name: ClosedTypeSlicingRemover,
    SliceMinFixer.name: SliceMinFixer,
    IdentifierRemover.name: IdentifierRemover,
}


def _build(ids: Iterable[str], factories: Dict[str, Callable[[], Modifier]], kind: str) -> List[Modifier]:
    modifiers = []
    for modifier_id in ids:
        factory = factories.get(modifier_id.strip())
        if factory is None:
            raise ConfigurationError(
                f"Unknown {kind} modifier '{modifier_id}', expected one of {', '.join(sorted(factories))}"
            )
        modifiers.append(factory())
    return modifiers


def build_value_set_pipeline(ids: Iterable[str]) -> ModifierPipeline[ValueSet]:
    """Instantiate value set modifiers in the given order.

    Raises:
        ConfigurationError: For unknown identifiers.
    """
    return ModifierPipeline(_build(ids, VALUE_SET_MODIFIERS, "ValueSet"))


def build_structure_definition_pipeline(ids: Iterable[str]) -> ModifierPipeline[StructureDefinition]:
    """Instantiate structure definition modifiers in the given order.

    Raises:
        ConfigurationError: For unknown identifiers.
    """
    return ModifierPipeline(_build(ids, STRUCTURE_DEFINITION_MODIFIERS, "StructureDefinition"))
