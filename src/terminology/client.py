"""FHIR terminology server client (ValueSet $expand, CodeSystem lookup, metadata)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests

from common.errors import TransportError
from common.http_client import get_json, parse_json, safe_post
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from constants import Constants
from validation_package.resources import ValueSet

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Result of probing the terminology server."""
    OK = "OK"
    NOT_OK = "NOT_OK"
    DISABLED = "DISABLED"


@dataclass(frozen=True)
class UrlAndVersion:
    url: str
    version: str


@dataclass
class _Parameters:
    parameter: List[Dict[str, Any]] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps({"resourceType": "Parameters", "parameter": self.parameter})


class TerminologyServerClient:
    """Client for the FHIR terminology operations igprep needs."""

    def __init__(
        self,
        base_url: str = Constants.TERMINOLOGY_SERVER_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = (Constants.CONNECT_TIMEOUT, Constants.READ_TIMEOUT),
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {"Accept": Constants.FHIR_JSON, "Content-Type": Constants.FHIR_JSON}

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def expand(self, value_set: ValueSet) -> ValueSet:
        """Expand value_set on the server; value sets with an expansion are returned as is.

        Raises:
            TransportError: On network failures, non-2xx answers or if the
                server does not answer with a ValueSet.
        """
        if value_set.has_expansion:
            logger.debug("ValueSet %s already expanded", value_set.canonical)
            return value_set

        body = _Parameters([{"name": "valueSet", "resource": value_set.data}]).to_json()
        url = self._url("ValueSet/$expand")
        res = safe_post(self.session, url, context="terminology", timeout=self.timeout, data=body, headers=self.headers)
        data = parse_json(res, context="terminology")
        if not isinstance(data, dict) or data.get("resourceType") != "ValueSet":
            raise TransportError(
                f"terminology server answered $expand of {value_set.canonical} with "
                f"{data.get('resourceType') if isinstance(data, dict) else type(data).__name__}",
                url=safe_url(url),
                status_code=res.status_code,
            )

        expanded = ValueSet(data)
        if is_debug_enabled(logger):
            logger.debug(
                "ValueSet expanded",
                extra=extra_context(
                    event="expand",
                    component="terminology",
                    target=value_set.canonical,
                    count=sum(1 for _ in expanded.expansion_contains()),
                ),
            )
        return expanded

    def metadata(self) -> Dict[str, Any]:
        """The server's CapabilityStatement."""
        return get_json(
            self.session, self._url("metadata"), context="terminology", timeout=self.timeout, headers=self.headers
        )

    def supported_code_system_versions(self, url: str) -> List[UrlAndVersion]:
        """Distinct versions of a CodeSystem known to the server, in answer order."""
        bundle = get_json(
            self.session,
            self._url("CodeSystem"),
            context="terminology",
            timeout=self.timeout,
            headers=self.headers,
            params={"url": url, "_summary": "true"},
        )

        versions: List[UrlAndVersion] = []
        entries = bundle.get("entry") if isinstance(bundle, dict) else None
        for entry in entries or []:
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if not isinstance(resource, dict) or resource.get("resourceType") != "CodeSystem" \
                    or not resource.get("version"):
                continue
            candidate = UrlAndVersion(resource.get("url") or url, resource["version"])
            if candidate not in versions:
                versions.append(candidate)
        return versions

    def test_connection(self) -> ConnectionStatus:
        """Request the server's metadata and report whether it answered."""
        try:
            metadata = self.metadata()
        except TransportError as exc:
            logger.warning("Terminology server %s not reachable: %s", safe_url(self.base_url), exc)
            return ConnectionStatus.NOT_OK

        software = metadata.get("software") if isinstance(metadata, dict) else None
        if not isinstance(software, dict):
            software = {}
        logger.info(
            "Connection test OK: %s - %s",
            software.get("name", "unknown"),
            software.get("version", "unknown"),
        )
        return ConnectionStatus.OK
