"""Recursive resolution of validation packages and their dependency closure."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from common.errors import CacheCorruptionError, IgPrepError, PackageResolutionError
from common.logging_utils import extra_context
from constants import Constants
from versioning.models import PackageIdentifier, VersionCatalog
from versioning.resolvers.wildcard import WildcardVersionResolver

from .package import Package
from .resolved import ResolvedPackageSet

logger = logging.getLogger(__name__)


class PackageClient(Protocol):
    """Registry access needed by the resolver."""

    def list_versions(self, name: str) -> VersionCatalog:
        ...

    def download(self, identifier: PackageIdentifier) -> Package:
        ...


@dataclass
class _ResolutionState:
    """Mutable state shared by all roots of one ``resolve`` call."""
    all_packages: Dict[PackageIdentifier, Package] = field(default_factory=dict)
    edges: Dict[PackageIdentifier, List[PackageIdentifier]] = field(default_factory=dict)
    wildcards: Dict[PackageIdentifier, PackageIdentifier] = field(default_factory=dict)


class PackageResolver:
    """Download validation packages with all of their transitive dependencies.

    Packages on the no-download list (by default the FHIR R4 core package,
    which validation engines ship themselves) are never fetched. Within one
    ``resolve`` call every package is downloaded at most once, even when
    several roots depend on it.
    """

    def __init__(self, client: PackageClient, no_download: Optional[Iterable[PackageIdentifier]] = None):
        self.client = client
        if no_download is None:
            no_download = [PackageIdentifier.from_string(p) for p in Constants.DEFAULT_NO_DOWNLOAD_PACKAGES]
        self.no_download = frozenset(no_download)

    def resolve(self, identifiers: Sequence[PackageIdentifier]) -> List[ResolvedPackageSet]:
        """Resolve each root identifier into a ResolvedPackageSet, preserving order.

        Raises:
            PackageResolutionError: If a catalog lookup, a download or a
                package manifest fails for any package reachable from the roots,
                or if a root is on the no-download list.
            CacheCorruptionError: If a cached package cannot be decoded.
        """
        state = _ResolutionState()
        wildcard_resolver = WildcardVersionResolver(self.client, state.wildcards)

        resolved_sets = []
        for identifier in identifiers:
            per_root: Dict[PackageIdentifier, Package] = {}
            concrete = self._resolve(identifier, state, per_root, wildcard_resolver)
            if concrete is None:
                raise PackageResolutionError(identifier, ValueError("package is on the no-download list"))

            resolved = ResolvedPackageSet.from_packages(per_root, concrete)
            logger.info(
                "Resolved %s with %d dependencies",
                concrete,
                len(resolved.dependencies),
                extra=extra_context(event="package_resolved", component="resolver", target=str(concrete)),
            )
            resolved_sets.append(resolved)
        return resolved_sets

    def _resolve(
        self,
        identifier: PackageIdentifier,
        state: _ResolutionState,
        per_root: Dict[PackageIdentifier, Package],
        wildcard_resolver: WildcardVersionResolver,
    ) -> Optional[PackageIdentifier]:
        """Register identifier and its closure in per_root.

        Returns:
            The concrete identifier, or None if the package is excluded.
        """
        if self._reuse_known(identifier, state, per_root):
            return identifier
        if self._is_excluded(identifier):
            return None

        try:
            concrete = wildcard_resolver.resolve(identifier)
        except (IgPrepError, OSError) as exc:
            raise PackageResolutionError(identifier, exc) from exc

        if concrete != identifier:
            if self._reuse_known(concrete, state, per_root):
                return concrete
            if self._is_excluded(concrete):
                return None

        logger.info("Downloading validation package %s", concrete)
        try:
            package = self.client.download(concrete)
            descriptor = package.get_descriptor()
        except (CacheCorruptionError, PackageResolutionError):
            raise
        except (IgPrepError, OSError) as exc:
            raise PackageResolutionError(concrete, exc) from exc

        state.all_packages[concrete] = package
        per_root[concrete] = package
        edges: List[PackageIdentifier] = []
        state.edges[concrete] = edges

        for dependency in descriptor.dependency_identifiers:
            resolved_dependency = self._resolve(dependency, state, per_root, wildcard_resolver)
            if resolved_dependency is not None:
                edges.append(resolved_dependency)

        return concrete

    def _reuse_known(
        self,
        identifier: PackageIdentifier,
        state: _ResolutionState,
        per_root: Dict[PackageIdentifier, Package],
    ) -> bool:
        """Copy an already downloaded package and its known closure into per_root."""
        if identifier not in state.all_packages:
            return False

        logger.debug("Validation package %s already resolved", identifier)
        stack = [identifier]
        while stack:
            current = stack.pop()
            if current in per_root and current != identifier:
                continue
            per_root[current] = state.all_packages[current]
            stack.extend(e for e in state.edges.get(current, ()) if e not in per_root)
        return True

    def _is_excluded(self, identifier: PackageIdentifier) -> bool:
        if identifier in self.no_download:
            logger.info("Not downloading validation package %s, package is on the no-download list", identifier)
            return True
        return False
