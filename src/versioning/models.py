"""Data models for validation package identifiers and registry version catalogs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import semantic_version

from common.errors import ConfigurationError

WILDCARD_VERSION = re.compile(r"^(\d+)\.(\d+)\.x$")
_WILDCARD_SEGMENTS = {"x", "X", "*"}
LATEST_VERSION = "latest"


def is_wildcard_version(version: str) -> bool:
    """Return True if version has the form MAJOR.MINOR.x."""
    return bool(WILDCARD_VERSION.match(version))


def is_malformed_wildcard(version: str) -> bool:
    """Return True if version uses a wildcard segment other than MAJOR.MINOR.x."""
    if is_wildcard_version(version):
        return False
    return any(segment in _WILDCARD_SEGMENTS for segment in version.split("."))


@dataclass(frozen=True)
class PackageIdentifier:
    """Name and version of a validation package, canonical form ``name|version``."""
    name: str
    version: str

    @classmethod
    def from_string(cls, name_and_version: str) -> "PackageIdentifier":
        """Parse ``name|version``.

        Raises:
            ConfigurationError: If the value is not ``name|version`` or the
                version is a malformed wildcard.
        """
        parts = name_and_version.strip().split("|")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ConfigurationError(
                f"Validation package '{name_and_version}' not specified as 'name|version'"
            )
        name, version = parts[0].strip(), parts[1].strip()
        if is_malformed_wildcard(version):
            raise ConfigurationError(
                f"Validation package '{name_and_version}' has malformed wildcard version, "
                "only MAJOR.MINOR.x is supported"
            )
        return cls(name, version)

    @property
    def is_wildcard(self) -> bool:
        return is_wildcard_version(self.version)

    @property
    def is_latest(self) -> bool:
        return self.version == LATEST_VERSION

    def with_version(self, version: str) -> "PackageIdentifier":
        return PackageIdentifier(self.name, version)

    def __str__(self) -> str:
        return f"{self.name}|{self.version}"


@dataclass
class CatalogVersion:
    """One entry of the registry's ``versions`` mapping."""
    name: Optional[str]
    version: Optional[str]
    fhir_version: Optional[str] = None
    description: Optional[str] = None
    tarball: Optional[str] = None
    shasum: Optional[str] = None
    url: Optional[str] = None
    unlisted: Optional[str] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "CatalogVersion":
        dist = data.get("dist") or {}
        return cls(
            name=data.get("name"),
            version=data.get("version"),
            fhir_version=data.get("fhirVersion"),
            description=data.get("description"),
            tarball=dist.get("tarball"),
            shasum=dist.get("shasum"),
            url=data.get("url"),
            unlisted=data.get("unlisted"),
        )


@dataclass
class VersionCatalog:
    """The registry's listing of all versions of one package name."""
    id: Optional[str]
    name: Optional[str]
    description: Optional[str] = None
    latest_tag: Optional[str] = None
    versions: Dict[str, CatalogVersion] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "VersionCatalog":
        """Build a catalog from registry JSON, ignoring unknown fields."""
        versions = {
            key: CatalogVersion.from_json(value or {})
            for key, value in (data.get("versions") or {}).items()
            if key
        }
        return cls(
            id=data.get("_id"),
            name=data.get("name"),
            description=data.get("description"),
            latest_tag=(data.get("dist-tags") or {}).get("latest"),
            versions=versions,
        )

    def latest_matching(self, version_prefix: str) -> Optional[str]:
        """Highest version ``<prefix><n>`` by numeric ``n``.

        Args:
            version_prefix: ``MAJOR.MINOR.`` including the trailing dot.

        Returns:
            The matching version string or None if nothing matches.
        """
        if not re.match(r"^\d+\.\d+\.$", version_prefix):
            raise ValueError("version_prefix must match \\d+\\.\\d+\\.")

        pattern = re.compile("^" + re.escape(version_prefix) + r"(\d+)$")
        matches: List[tuple] = []
        for version in self.versions:
            m = pattern.match(version)
            if m:
                matches.append((int(m.group(1)), version))
        if not matches:
            return None
        matches.sort(reverse=True)
        return matches[0][1]

    def latest(self) -> Optional[str]:
        """The ``latest`` dist-tag, or the highest semantic version listed."""
        if self.latest_tag:
            return self.latest_tag
        parsed = []
        for v in self.versions:
            try:
                parsed.append(semantic_version.Version(v))
            except ValueError:
                continue  # Skip non-semver versions such as "current"
        if not parsed:
            return None
        parsed.sort(reverse=True)
        return str(parsed[0])

    def tarball_for(self, version: str) -> Optional[str]:
        entry = self.versions.get(version)
        return entry.tarball if entry else None
