"""Validation packages: downloaded archive entries, manifest and parsed resources."""

from __future__ import annotations

import io
import json
import logging
import os
import tarfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from common.errors import PackageFormatError
from constants import Constants
from versioning.models import PackageIdentifier

from .resources import CodeSystem, NamingSystem, StructureDefinition, ValueSet, parse_resource

logger = logging.getLogger(__name__)

_NON_RESOURCE_FILES = {"package.json", ".index.json", "validation-summary.json", "validation-oo.json"}


@dataclass
class PackageResources:
    """Conformance resources of one package, grouped by type."""
    code_systems: List[CodeSystem] = field(default_factory=list)
    naming_systems: List[NamingSystem] = field(default_factory=list)
    structure_definitions: List[StructureDefinition] = field(default_factory=list)
    value_sets: List[ValueSet] = field(default_factory=list)

    def add(self, resource) -> None:
        if isinstance(resource, CodeSystem):
            self.code_systems.append(resource)
        elif isinstance(resource, NamingSystem):
            self.naming_systems.append(resource)
        elif isinstance(resource, StructureDefinition):
            self.structure_definitions.append(resource)
        elif isinstance(resource, ValueSet):
            self.value_sets.append(resource)


@dataclass
class PackageDescriptor:
    """Metadata from a package's ``package/package.json`` manifest."""
    name: Optional[str]
    version: Optional[str]
    fhir_versions: List[str] = field(default_factory=list)
    dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: bytes) -> "PackageDescriptor":
        try:
            data = json.loads(raw.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PackageFormatError(f"Error reading package.json: {exc}") from exc
        if not isinstance(data, dict):
            raise PackageFormatError("package.json is not a JSON object")

        dependencies = data.get("dependencies") or {}
        if not isinstance(dependencies, dict):
            raise PackageFormatError("package.json dependencies is not a JSON object")
        return cls(
            name=data.get("name"),
            version=data.get("version"),
            fhir_versions=list(data.get("fhirVersions") or []),
            dependencies={str(k): str(v) for k, v in dependencies.items()},
        )

    @property
    def dependency_identifiers(self) -> List[PackageIdentifier]:
        identifiers = []
        for name, version in self.dependencies.items():
            if name and version:
                identifiers.append(PackageIdentifier(name, version))
            else:
                logger.warning("Ignoring incomplete dependency '%s': '%s' in %s", name, version, self.name)
        return identifiers


class Package:
    """A downloaded validation package.

    Entries are immutable after creation. The manifest and the conformance
    resources are parsed on first access and memoized.
    """

    def __init__(self, identifier: PackageIdentifier, entries: Sequence[Tuple[str, bytes]]):
        self.identifier = identifier
        self.entries: Tuple[Tuple[str, bytes], ...] = tuple(entries)
        self._descriptor: Optional[PackageDescriptor] = None
        self._resources: Optional[PackageResources] = None

    @classmethod
    def from_archive(cls, identifier: PackageIdentifier, archive: bytes) -> "Package":
        """Read all regular files of a ``.tgz`` package archive."""
        entries = []
        try:
            with tarfile.open(fileobj=io.BytesIO(archive), mode="r:*") as tar:
                for member in tar:
                    if not member.isfile():
                        continue
                    fileobj = tar.extractfile(member)
                    if fileobj is None:
                        continue
                    with fileobj:
                        entries.append((member.name, fileobj.read()))
        except (tarfile.TarError, EOFError, OSError) as exc:
            raise PackageFormatError(f"Error opening package archive of {identifier}: {exc}") from exc
        return cls(identifier, entries)

    @property
    def name(self) -> str:
        return self.identifier.name

    @property
    def version(self) -> str:
        return self.identifier.version

    def entry(self, filename: str) -> Optional[bytes]:
        for name, content in self.entries:
            if name == filename:
                return content
        return None

    def get_descriptor(self) -> PackageDescriptor:
        if self._descriptor is None:
            raw = self.entry(Constants.PACKAGE_MANIFEST)
            if raw is None:
                raise PackageFormatError(f"package.json not found in {self.identifier}")
            self._descriptor = PackageDescriptor.from_json(raw)
        return self._descriptor

    def parse_resources(self) -> PackageResources:
        """Parse JSON entries into typed resources, once."""
        if self._resources is not None:
            return self._resources

        resources = PackageResources()
        for filename, content in self.entries:
            basename = os.path.basename(filename)
            if not filename.lower().endswith(".json") or basename.lower() in _NON_RESOURCE_FILES:
                continue
            try:
                data = json.loads(content.decode("utf-8-sig"))
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                logger.debug("Could not parse JSON in %s of %s: %s", filename, self.identifier, exc)
                continue
            resource = parse_resource(data)
            if resource is not None:
                resources.add(resource)

        logger.debug(
            "Parsed %s: %d CodeSystems, %d NamingSystems, %d StructureDefinitions, %d ValueSets",
            self.identifier,
            len(resources.code_systems),
            len(resources.naming_systems),
            len(resources.structure_definitions),
            len(resources.value_sets),
        )
        self._resources = resources
        return resources

    def __repr__(self) -> str:
        return f"Package({self.identifier})"
