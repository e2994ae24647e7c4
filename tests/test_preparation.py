"""End-to-end preparation run against in-memory registry, terminology server and engine."""

from cli_config import PrepConfig
from preparation import build_package_client, build_terminology_client, prepare
from registry.cached import CachingPackageClient
from structure.snapshots import SnapshotResult
from terminology.client import TerminologyServerClient
from versioning.models import PackageIdentifier, VersionCatalog
from conftest import make_package, structure_definition, value_set

BASE = "http://example.org/StructureDefinition/"
SYSTEM = "http://example.org/CodeSystem/cs"


class InMemoryRegistry:
    def __init__(self, packages):
        self.packages = {p.identifier: p for p in packages}
        self.downloads = []

    def list_versions(self, name):
        versions = {i.version: {"version": i.version} for i in self.packages if i.name == name}
        return VersionCatalog.from_json({"_id": name, "versions": versions})

    def download(self, identifier):
        self.downloads.append(identifier)
        return self.packages[identifier]


class InMemoryTerminologyServer:
    def __init__(self):
        self.expanded = []

    def supported_code_system_versions(self, url):
        return []

    def expand(self, vs):
        self.expanded.append(vs.canonical)
        result = vs.copy()
        result.data["expansion"] = {
            "parameter": [{"name": "version", "valueUri": f"{SYSTEM}|2.0.0"}],
            "contains": [{"system": SYSTEM, "code": "a"}],
        }
        return result


class CopyEngine:
    def generate_snapshot(self, definition):
        result = definition.copy()
        result.data["snapshot"] = {"element": list(definition.differential_elements())}
        return SnapshotResult(result)


def _packages():
    dep_profile = structure_definition(
        BASE + "dep",
        elements=[{"path": "Observation.code", "binding": {"strength": "required", "valueSet": "http://vs/dep"}}],
    )
    profile = structure_definition(
        BASE + "main",
        base=BASE + "dep",
        elements=[
            {"path": "Observation.status", "binding": {"strength": "required", "valueSet": "http://vs/main"}},
            {"path": "Observation.method", "binding": {"strength": "example", "valueSet": "http://vs/example"}},
            {"path": "Observation.focus", "binding": {"strength": "required", "valueSet": "http://vs/missing"}},
        ],
    )
    root = make_package(
        "de.example.ig", "1.0.0", {"de.example.base": "1.0.x", "hl7.fhir.r4.core": "4.0.1"},
        resources=[profile.data, value_set("http://vs/main", includes=[{"system": SYSTEM}]).data],
    )
    dependency = make_package(
        "de.example.base", "1.0.2",
        resources=[dep_profile.data, value_set("http://vs/dep", includes=[{"system": SYSTEM}]).data],
    )
    return [root, dependency]


def _validated(tmp_path, strengths=("required",)):
    config = PrepConfig()
    config.packages = ["de.example.ig|1.0.0"]
    config.value_set_binding_strengths = list(strengths)
    config.cache_codec = "identity"
    config.with_cache_root(str(tmp_path))
    return config.validate()


def test_prepare_resolves_expands_and_generates_snapshots(tmp_path):
    registry = InMemoryRegistry(_packages())
    server = InMemoryTerminologyServer()

    result = prepare(
        _validated(tmp_path),
        package_client=registry,
        terminology_client=server,
        snapshot_engine=CopyEngine(),
    )

    assert PackageIdentifier("hl7.fhir.r4.core", "4.0.1") not in registry.downloads
    (prepared,) = result.packages
    report = prepared.to_report()
    assert report["package"] == "de.example.ig|1.0.0"
    assert report["dependencies"] == ["de.example.base|1.0.2"]
    assert report["resources"]["StructureDefinition"] == 1
    assert report["valueSets"]["needed"] == ["http://vs/dep", "http://vs/main", "http://vs/missing"]
    assert report["valueSets"]["missing"] == ["http://vs/missing"]
    assert report["valueSets"]["expanded"] == ["http://vs/dep|1.0.0", "http://vs/main|1.0.0"]
    assert report["snapshots"] == [BASE + "dep|1.0.0", BASE + "main|1.0.0"]

    versions = {next(vs.expansion_contains()).get("version") for vs in prepared.expanded_value_sets}
    assert versions == {"2.0.0"}


def test_second_run_uses_caches(tmp_path):
    server = InMemoryTerminologyServer()
    for _ in range(2):
        prepare(
            _validated(tmp_path),
            package_client=InMemoryRegistry(_packages()),
            terminology_client=server,
            snapshot_engine=CopyEngine(),
        )
    assert sorted(server.expanded) == ["http://vs/dep|1.0.0", "http://vs/main|1.0.0"]


def test_prepare_without_terminology_and_engine(tmp_path):
    result = prepare(_validated(tmp_path), package_client=InMemoryRegistry(_packages()))

    report = result.to_report()
    assert report["expansionSkipped"] is True
    assert report["snapshotsSkipped"] is True
    assert report["packages"][0]["valueSets"]["expanded"] == []
    assert report["packages"][0]["snapshots"] == []


def test_client_builders(tmp_path):
    validated = _validated(tmp_path)
    assert isinstance(build_package_client(validated), CachingPackageClient)
    assert isinstance(build_terminology_client(validated), TerminologyServerClient)

    validated.config.value_set_expansion_server_base_url = None
    assert build_terminology_client(validated) is None
