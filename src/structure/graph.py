"""Reference graph over StructureDefinitions and the ValueSets they bind."""

from __future__ import annotations

import logging
from typing import Callable, Collection, Dict, Iterable, List, Optional, Set

from validation_package.resolved import ResolvedPackageSet
from validation_package.resources import BindingStrength, StructureDefinition, ValueSet

logger = logging.getLogger(__name__)

_FIXED_URI_KEYS = ("fixedUri", "fixedUrl", "fixedCanonical")


class StructureGraphExtractor:
    """Compute dependency sets of StructureDefinitions within a corpus.

    The corpus is indexed once by ``url`` (several versions may share it) and
    by ``url|version``. References are followed through the base definition,
    fixed ``Extension.url`` values and type profiles/target profiles of
    differential elements.
    """

    def __init__(self, structure_definitions: Iterable[StructureDefinition]):
        self.by_url: Dict[str, List[StructureDefinition]] = {}
        self.by_url_and_version: Dict[str, StructureDefinition] = {}
        self._reported_missing: Set[str] = set()
        for sd in structure_definitions:
            if not sd.url:
                continue
            self.by_url.setdefault(sd.url, []).append(sd)
            self.by_url_and_version[sd.canonical] = sd

    @classmethod
    def for_package_set(cls, resolved: ResolvedPackageSet) -> "StructureGraphExtractor":
        return cls(resolved.all_structure_definitions)

    def lookup(self, reference: Optional[str]) -> List[StructureDefinition]:
        """Definitions matching a ``url`` or ``url|version`` reference."""
        if not reference:
            return []
        found = list(self.by_url.get(reference, ()))
        versioned = self.by_url_and_version.get(reference)
        if versioned is not None and versioned not in found:
            found.append(versioned)
        return found

    @staticmethod
    def references_of(definition: StructureDefinition) -> List[str]:
        """Direct references of a definition, base definition first."""
        references = []
        if definition.base_definition:
            references.append(definition.base_definition)

        for element in definition.differential_elements():
            if element.get("path") == "Extension.url":
                for key in _FIXED_URI_KEYS:
                    if element.get(key):
                        references.append(element[key])
            for element_type in element.get("type") or []:
                references.extend(element_type.get("profile") or [])
                references.extend(element_type.get("targetProfile") or [])
        return references

    def dependencies_of(self, definition: StructureDefinition) -> Set[StructureDefinition]:
        """Transitive closure of definitions referenced by definition, excluding itself.

        Other versions of the definition's own url are dependencies like any
        other definition. References found nowhere in the corpus are logged
        at warning level, once per referencing definition.
        """
        visited: Set[str] = set()
        result: Set[StructureDefinition] = set()

        stack = [definition]
        while stack:
            current = stack.pop()
            if current.canonical in visited:
                continue
            visited.add(current.canonical)

            missing = []
            for reference in self.references_of(current):
                found = self.lookup(reference)
                if not found:
                    missing.append(reference)
                for dependency in found:
                    if dependency is definition:
                        continue
                    result.add(dependency)
                    stack.append(dependency)
            self._report_missing(current, missing)

        return result

    def _report_missing(self, definition: StructureDefinition, missing: List[str]) -> None:
        if not missing or definition.canonical in self._reported_missing:
            return
        self._reported_missing.add(definition.canonical)
        logger.warning(
            "StructureDefinition %s references definitions not found in validation package or its dependencies: [%s]",
            definition.canonical,
            ", ".join(sorted(set(missing))),
        )

    @staticmethod
    def value_sets_needed(
        definitions: Iterable[StructureDefinition], binding_strengths: Collection[BindingStrength]
    ) -> Set[str]:
        """ValueSet references of differential bindings with one of the given strengths.

        Bindings inherited from base definitions are not collected.
        """
        strengths = {s.value for s in binding_strengths}
        needed = set()
        for definition in definitions:
            for element in definition.differential_elements():
                binding = element.get("binding") or {}
                if binding.get("strength") in strengths and binding.get("valueSet"):
                    needed.add(binding["valueSet"])
        return needed

    def value_sets_for_package(
        self, resolved: ResolvedPackageSet, binding_strengths: Collection[BindingStrength]
    ) -> Set[str]:
        """Needed ValueSets of the root package's definitions and their dependencies."""
        definitions: Set[StructureDefinition] = set()
        for sd in resolved.root_resources().structure_definitions:
            definitions.add(sd)
            definitions.update(self.dependencies_of(sd))
        return self.value_sets_needed(definitions, binding_strengths)

    @staticmethod
    def find_value_sets(
        needed: Collection[str],
        value_sets: Iterable[ValueSet],
        fallback: Optional[Callable[[str], Optional[object]]] = None,
        label: Optional[str] = None,
    ) -> List[ValueSet]:
        """Select the needed ValueSets and warn once about the missing ones.

        Args:
            needed: ``url`` or ``url|version`` references.
            value_sets: Candidate ValueSets, typically of a ResolvedPackageSet.
            fallback: Optional lookup for references provided elsewhere (for
                example by the validation engine's core package); references it
                resolves are not reported as missing.
            label: Package name used in the warning.
        """
        needed = set(needed)
        found = [vs for vs in value_sets if vs.url in needed or vs.canonical in needed]
        found_keys = {key for vs in found for key in (vs.url, vs.canonical)}

        missing = sorted(
            ref for ref in needed if ref not in found_keys and (fallback is None or fallback(ref) is None)
        )
        if missing:
            logger.warning(
                "The following ValueSets are required for validation but could not be found in "
                "validation package %s or its dependencies, this may result in incomplete validation: [%s]",
                label or "",
                ", ".join(missing),
            )
        return found
