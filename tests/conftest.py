"""Shared builders for validation package archives and FHIR resources."""

import io
import json
import tarfile

import pytest

from validation_package.package import Package
from validation_package.resources import StructureDefinition, ValueSet
from versioning.models import PackageIdentifier


def make_archive(name, version, dependencies=None, resources=(), extra_files=()):
    """Build a gzip compressed package archive as bytes."""
    manifest = {"name": name, "version": version, "fhirVersions": ["4.0.1"]}
    if dependencies:
        manifest["dependencies"] = dependencies

    files = [("package/package.json", json.dumps(manifest).encode("utf-8"))]
    for i, resource in enumerate(resources):
        filename = f"package/{resource['resourceType']}-{resource.get('id', i)}.json"
        files.append((filename, json.dumps(resource).encode("utf-8")))
    files.extend(extra_files)

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for filename, content in files:
            info = tarfile.TarInfo(filename)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def make_package(name, version, dependencies=None, resources=()):
    return Package.from_archive(
        PackageIdentifier(name, version), make_archive(name, version, dependencies, resources)
    )


def structure_definition(url, version="1.0.0", base=None, elements=(), status="active", snapshot=None, **extra):
    data = {
        "resourceType": "StructureDefinition",
        "id": url.rsplit("/", 1)[-1],
        "url": url,
        "version": version,
        "status": status,
        "differential": {"element": list(elements)},
    }
    if base:
        data["baseDefinition"] = base
    if snapshot is not None:
        data["snapshot"] = {"element": snapshot}
    data.update(extra)
    return StructureDefinition(data)


def value_set(url, version="1.0.0", status="active", includes=(), expansion=None):
    data = {
        "resourceType": "ValueSet",
        "id": url.rsplit("/", 1)[-1],
        "url": url,
        "version": version,
        "status": status,
    }
    if includes:
        data["compose"] = {"include": list(includes)}
    if expansion is not None:
        data["expansion"] = expansion
    return ValueSet(data)


@pytest.fixture
def package_factory():
    return make_package
