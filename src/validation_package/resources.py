"""Thin typed wrappers around FHIR conformance resources in JSON form.

The wrappers keep the resource as a plain dict (``data``) and expose the
handful of fields the preparation steps need. Instances hash by identity so
they can be collected in sets; two wrappers around equal JSON are
semantically equal when their ``data`` compares equal.
"""

from __future__ import annotations

import copy
import json
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional


class BindingStrength(Enum):
    """FHIR binding strength codes."""
    REQUIRED = "required"
    EXTENSIBLE = "extensible"
    PREFERRED = "preferred"
    EXAMPLE = "example"


class PublicationStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    RETIRED = "retired"
    UNKNOWN = "unknown"


class MetadataResource:
    """Base wrapper for canonical resources with url, version and status."""

    resource_type: str = ""

    def __init__(self, data: Dict[str, Any]):
        self.data = data

    @classmethod
    def from_json(cls, raw: bytes) -> "MetadataResource":
        return cls(json.loads(raw.decode("utf-8-sig")))

    def to_json(self) -> bytes:
        return json.dumps(self.data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def copy(self):
        """Deep copy, so modifiers never mutate their input."""
        return type(self)(copy.deepcopy(self.data))

    @property
    def url(self) -> Optional[str]:
        return self.data.get("url")

    @property
    def version(self) -> Optional[str]:
        return self.data.get("version")

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")

    @property
    def name(self) -> Optional[str]:
        return self.data.get("name")

    @property
    def canonical(self) -> str:
        return f"{self.url}|{self.version}"

    @property
    def is_draft(self) -> bool:
        return self.status == PublicationStatus.DRAFT.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.canonical})"


class CodeSystem(MetadataResource):
    resource_type = "CodeSystem"


class NamingSystem(MetadataResource):
    resource_type = "NamingSystem"

    @property
    def url(self) -> Optional[str]:
        # NamingSystem has no canonical url in R4, the uri unique id is used instead
        for unique_id in self.data.get("uniqueId") or []:
            if unique_id.get("type") == "uri" and unique_id.get("value"):
                return unique_id["value"]
        return self.data.get("url")


class StructureDefinition(MetadataResource):
    resource_type = "StructureDefinition"

    @property
    def base_definition(self) -> Optional[str]:
        return self.data.get("baseDefinition")

    @property
    def has_differential(self) -> bool:
        return bool((self.data.get("differential") or {}).get("element"))

    @property
    def has_snapshot(self) -> bool:
        return bool((self.data.get("snapshot") or {}).get("element"))

    def differential_elements(self) -> List[Dict[str, Any]]:
        return (self.data.get("differential") or {}).get("element") or []

    def snapshot_elements(self) -> List[Dict[str, Any]]:
        return (self.data.get("snapshot") or {}).get("element") or []

    def with_snapshot_of(self, other: "StructureDefinition") -> "StructureDefinition":
        """Set the snapshot of other on this definition and return self."""
        if other.data.get("snapshot") is not None:
            self.data["snapshot"] = copy.deepcopy(other.data["snapshot"])
        return self


class ValueSet(MetadataResource):
    resource_type = "ValueSet"

    def includes(self) -> List[Dict[str, Any]]:
        return (self.data.get("compose") or {}).get("include") or []

    @property
    def has_expansion(self) -> bool:
        return "expansion" in self.data

    def expansion_contains(self) -> Iterator[Dict[str, Any]]:
        """Every expansion entry, nested entries included."""
        stack = list(reversed((self.data.get("expansion") or {}).get("contains") or []))
        while stack:
            entry = stack.pop()
            yield entry
            stack.extend(reversed(entry.get("contains") or []))

    def expansion_parameters(self) -> List[Dict[str, Any]]:
        return (self.data.get("expansion") or {}).get("parameter") or []


RESOURCE_TYPES = {
    cls.resource_type: cls for cls in (CodeSystem, NamingSystem, StructureDefinition, ValueSet)
}


def parse_resource(data: Mapping[str, Any]) -> Optional[MetadataResource]:
    """Wrap a JSON resource if it is one of the supported conformance resource types."""
    if not isinstance(data, dict):
        return None
    cls = RESOURCE_TYPES.get(data.get("resourceType"))
    return cls(data) if cls else None
