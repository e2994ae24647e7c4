"""ResourceKinds for the values igprep keeps in its file system caches."""

from __future__ import annotations

import base64
import json

from validation_package.package import Package
from validation_package.resources import StructureDefinition, ValueSet
from versioning.models import PackageIdentifier

from .store import ResourceKind


def _serialize_package(package: Package) -> bytes:
    envelope = {
        "name": package.name,
        "version": package.version,
        "entries": [
            {"filename": filename, "data": base64.b64encode(content).decode("ascii")}
            for filename, content in package.entries
        ],
    }
    return json.dumps(envelope, separators=(",", ":")).encode("utf-8")


def _deserialize_package(raw: bytes) -> Package:
    envelope = json.loads(raw.decode("utf-8"))
    entries = [
        (entry["filename"], base64.b64decode(entry["data"], validate=True))
        for entry in envelope["entries"]
    ]
    return Package(PackageIdentifier(envelope["name"], envelope["version"]), entries)


PACKAGE_KIND: ResourceKind[Package] = ResourceKind(
    resource_type="Package",
    serialize=_serialize_package,
    deserialize=_deserialize_package,
    url_of=lambda p: p.name,
    version_of=lambda p: p.version,
)

VALUE_SET_KIND: ResourceKind[ValueSet] = ResourceKind(
    resource_type="ValueSet",
    serialize=lambda vs: vs.to_json(),
    deserialize=ValueSet.from_json,
    url_of=lambda vs: vs.url,
    version_of=lambda vs: vs.version,
    is_draft=lambda vs: vs.is_draft,
)

STRUCTURE_DEFINITION_KIND: ResourceKind[StructureDefinition] = ResourceKind(
    resource_type="StructureDefinition",
    serialize=lambda sd: sd.to_json(),
    deserialize=StructureDefinition.from_json,
    url_of=lambda sd: sd.url,
    version_of=lambda sd: sd.version,
    is_draft=lambda sd: sd.is_draft,
)
