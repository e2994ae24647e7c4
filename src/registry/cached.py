"""Package client that keeps downloaded archives in a ContentCache."""

from __future__ import annotations

from filecache.kinds import PACKAGE_KIND
from filecache.store import ContentCache
from validation_package.package import Package
from versioning.models import PackageIdentifier, VersionCatalog


class CachingPackageClient:
    """Read-through cache in front of a package client.

    Catalog lookups are always delegated, the catalog of a package name
    changes whenever a version is published.
    """

    def __init__(self, delegate, cache: ContentCache[Package]):
        if cache.kind is not PACKAGE_KIND:
            raise ValueError("cache must store packages")
        self.delegate = delegate
        self.cache = cache

    def list_versions(self, name: str) -> VersionCatalog:
        return self.delegate.list_versions(name)

    def download(self, identifier: PackageIdentifier) -> Package:
        return self.cache.read_or_create(
            identifier.name, identifier.version, lambda: self.delegate.download(identifier)
        )
