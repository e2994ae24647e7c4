"""ValueSet modifiers applied around terminology server expansion."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from validation_package.resources import ValueSet

from .base import Modifier

logger = logging.getLogger(__name__)

_VERSION_VALUE_KEYS = ("valueUri", "valueCanonical", "valueString")


class ValueSetModifier(Modifier[ValueSet]):
    """Modifier with expansion specific hook names."""

    def pre_expansion(self, value_set: ValueSet) -> ValueSet:
        return value_set

    def post_expansion(self, with_composition: ValueSet, with_expansion: ValueSet) -> ValueSet:
        return with_expansion

    def pre_transform(self, resource: ValueSet) -> ValueSet:
        return self.pre_expansion(resource)

    def post_transform(self, original: ValueSet, result: ValueSet) -> ValueSet:
        return self.post_expansion(original, result)


class VersionIncluder(ValueSetModifier):
    """Fill in missing code system versions of expansion entries.

    The version is taken from the expansion's ``version`` parameters
    (``system|version``), or else from the single compose include of the
    entry's system that lists the entry's code. Systems with conflicting
    version parameters and ambiguous includes leave the version unset.
    """

    name = "version-includer"

    def post_expansion(self, with_composition: ValueSet, with_expansion: ValueSet) -> ValueSet:
        if with_expansion is None or not with_expansion.has_expansion:
            return with_expansion
        if all(entry.get("version") for entry in with_expansion.expansion_contains()):
            return with_expansion

        result = with_expansion.copy()
        versions_by_system = self._versions_from_parameters(result)
        for entry in result.expansion_contains():
            if entry.get("version"):
                continue
            system = entry.get("system")
            version = versions_by_system.get(system) if system else None
            if version is None:
                version = self._version_from_compose(with_composition, system, entry.get("code"))
            if version is not None:
                entry["version"] = version
        return result

    @staticmethod
    def _versions_from_parameters(value_set: ValueSet) -> Dict[str, str]:
        versions: Dict[str, Optional[str]] = {}
        for parameter in value_set.expansion_parameters():
            if parameter.get("name") != "version":
                continue
            value = next((parameter[k] for k in _VERSION_VALUE_KEYS if parameter.get(k)), None)
            parts = value.split("|") if value else []
            if len(parts) != 2:
                continue
            system, version = parts
            if system in versions and versions[system] != version:
                versions[system] = None
            else:
                versions[system] = version
        return {system: version for system, version in versions.items() if version is not None}

    @staticmethod
    def _version_from_compose(value_set: Optional[ValueSet], system: Optional[str], code: Optional[str]) -> Optional[str]:
        if value_set is None:
            return None
        matches = [
            include
            for include in value_set.includes()
            if include.get("system") == system
            and any(concept.get("code") == code for concept in include.get("concept") or [])
        ]
        if len(matches) != 1:
            return None
        return matches[0].get("version")
