"""A root validation package together with its flattened dependency closure."""

from __future__ import annotations

from functools import cached_property
from typing import Iterator, List, Mapping, Sequence

from common.errors import PackageResolutionError
from versioning.models import PackageIdentifier

from .package import Package, PackageResources
from .resources import CodeSystem, NamingSystem, StructureDefinition, ValueSet


class ResolvedPackageSet:
    """Root package plus every transitively reachable dependency (excluding itself).

    Read-only after construction; the ``all_*`` accessors flatten root and
    dependencies on first use and keep the result.
    """

    def __init__(self, root: Package, dependencies: Sequence[Package]):
        self.root = root
        self.dependencies = tuple(dependencies)

    @classmethod
    def from_packages(
        cls, packages: Mapping[PackageIdentifier, Package], root_identifier: PackageIdentifier
    ) -> "ResolvedPackageSet":
        root = packages.get(root_identifier)
        if root is None:
            raise PackageResolutionError(root_identifier, ValueError("root package not part of resolved packages"))
        dependencies = [p for identifier, p in packages.items() if identifier != root_identifier]
        return cls(root, dependencies)

    @property
    def identifier(self) -> PackageIdentifier:
        return self.root.identifier

    @property
    def packages(self) -> Iterator[Package]:
        yield self.root
        yield from self.dependencies

    def parse_resources(self) -> None:
        for package in self.packages:
            package.parse_resources()

    def root_resources(self) -> PackageResources:
        return self.root.parse_resources()

    def _all(self, attribute: str) -> List:
        return [r for p in self.packages for r in getattr(p.parse_resources(), attribute)]

    @cached_property
    def all_code_systems(self) -> List[CodeSystem]:
        return self._all("code_systems")

    @cached_property
    def all_naming_systems(self) -> List[NamingSystem]:
        return self._all("naming_systems")

    @cached_property
    def all_structure_definitions(self) -> List[StructureDefinition]:
        return self._all("structure_definitions")

    @cached_property
    def all_value_sets(self) -> List[ValueSet]:
        return self._all("value_sets")

    def __repr__(self) -> str:
        return f"ResolvedPackageSet({self.root.identifier}, dependencies={[str(p.identifier) for p in self.dependencies]})"
