"""FHIR package registry client: version catalogs and package archives."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple
from urllib.parse import quote

import requests

from common.http_client import get_json, safe_get
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from constants import Constants
from validation_package.package import Package
from versioning.models import PackageIdentifier, VersionCatalog

logger = logging.getLogger(__name__)


class PackageRegistryClient:
    """HTTP client for an npm-style FHIR package registry (e.g. Simplifier)."""

    def __init__(
        self,
        base_url: str = Constants.PACKAGE_SERVER_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = (Constants.CONNECT_TIMEOUT, Constants.READ_TIMEOUT),
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._catalogs: Dict[str, VersionCatalog] = {}

    def _url(self, *segments: str) -> str:
        return "/".join([self.base_url] + [quote(s, safe="@") for s in segments])

    def list_versions(self, name: str) -> VersionCatalog:
        """Fetch the version catalog of a package name (``GET /{name}``).

        Raises:
            TransportError: If the registry is unreachable or does not answer with JSON.
        """
        if name in self._catalogs:
            return self._catalogs[name]

        data = get_json(
            self.session,
            self._url(name),
            context="registry",
            timeout=self.timeout,
            headers={"Accept": Constants.REGISTRY_ACCEPT},
        )
        catalog = VersionCatalog.from_json(data if isinstance(data, dict) else {})
        if is_debug_enabled(logger):
            logger.debug(
                "Catalog received",
                extra=extra_context(
                    event="catalog", component="registry", target=name, count=len(catalog.versions)
                ),
            )
        self._catalogs[name] = catalog
        return catalog

    def download(self, identifier: PackageIdentifier) -> Package:
        """Download and unpack the archive of one package version.

        The tarball location is taken from the version catalog; if the catalog
        does not list one, ``GET /{name}/{version}`` is used.

        Raises:
            TransportError: On network failures or non-2xx answers.
            PackageFormatError: If the archive cannot be read.
        """
        tarball = self.list_versions(identifier.name).tarball_for(identifier.version)
        url = tarball or self._url(identifier.name, identifier.version)

        with Timer() as timer:
            res = safe_get(
                self.session,
                url,
                context="registry",
                timeout=self.timeout,
                headers={"Accept": "application/tar+gzip, application/octet-stream, */*"},
            )
        logger.info(
            "Downloaded %s (%d bytes)",
            identifier,
            len(res.content),
            extra=extra_context(
                event="package_download",
                component="registry",
                target=safe_url(url),
                duration_ms=timer.duration_ms(),
            ),
        )
        return Package.from_archive(identifier, res.content)
