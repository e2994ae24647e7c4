"""Resolver for ``MAJOR.MINOR.x`` and ``latest`` package versions against the registry catalog."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from ..models import PackageIdentifier, VersionCatalog

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    """Anything that can list the versions of a package name."""

    def list_versions(self, name: str) -> VersionCatalog:
        ...


class WildcardVersionResolver:
    """Turn wildcard and ``latest`` identifiers into concrete ones.

    Other identifiers are returned unchanged without touching the catalog
    source. An identifier without any matching catalog version is also
    returned unchanged; downloading it is expected to fail at the registry.
    """

    def __init__(self, source: CatalogSource, memo: Optional[Dict[PackageIdentifier, PackageIdentifier]] = None):
        self.source = source
        self.memo = memo if memo is not None else {}

    def fetch_candidates(self, identifier: PackageIdentifier) -> VersionCatalog:
        """Fetch the version catalog for the identifier's package name."""
        return self.source.list_versions(identifier.name)

    def pick(self, identifier: PackageIdentifier, catalog: VersionCatalog) -> Optional[str]:
        """Select the highest patch version for the wildcard's major/minor prefix.

        ``latest`` picks the catalog's latest dist-tag or its highest version.
        """
        if identifier.is_latest:
            return catalog.latest()
        prefix = identifier.version[:-1]  # "4.2.x" -> "4.2."
        return catalog.latest_matching(prefix)

    def resolve(self, identifier: PackageIdentifier) -> PackageIdentifier:
        if not (identifier.is_wildcard or identifier.is_latest):
            return identifier
        if identifier in self.memo:
            return self.memo[identifier]

        version = self.pick(identifier, self.fetch_candidates(identifier))
        if version is None:
            logger.warning("No version matching %s found in registry catalog", identifier)
            resolved = identifier
        else:
            resolved = identifier.with_version(version)
            logger.debug("Resolved %s to %s", identifier, resolved)

        self.memo[identifier] = resolved
        return resolved
