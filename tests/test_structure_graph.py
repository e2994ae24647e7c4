"""Tests for StructureDefinition dependency extraction and needed ValueSets."""

import logging

from structure.graph import StructureGraphExtractor
from validation_package.resolved import ResolvedPackageSet
from validation_package.resources import BindingStrength
from conftest import make_package, structure_definition, value_set

BASE = "http://example.org/StructureDefinition/"


def urls(definitions):
    return sorted(sd.url for sd in definitions)


def test_follows_base_extension_and_type_profiles():
    base = structure_definition(BASE + "base")
    extension = structure_definition(BASE + "ext", base=BASE + "base")
    profile = structure_definition(BASE + "profile")
    target = structure_definition(BASE + "target")
    unrelated = structure_definition(BASE + "unrelated")
    definition = structure_definition(
        BASE + "main",
        base=BASE + "base",
        elements=[
            {"path": "Extension.url", "fixedUri": BASE + "ext"},
            {"path": "Observation.subject", "type": [{"code": "Reference", "targetProfile": [BASE + "target"]}]},
            {"path": "Observation.value[x]", "type": [{"code": "Quantity", "profile": [BASE + "profile"]}]},
        ],
    )
    extractor = StructureGraphExtractor([base, extension, profile, target, unrelated, definition])

    assert urls(extractor.dependencies_of(definition)) == [BASE + "base", BASE + "ext", BASE + "profile", BASE + "target"]


def test_versioned_reference():
    v1 = structure_definition(BASE + "dep", version="1.0.0")
    v2 = structure_definition(BASE + "dep", version="2.0.0")
    definition = structure_definition(BASE + "main", base=BASE + "dep|2.0.0")
    extractor = StructureGraphExtractor([v1, v2, definition])

    assert extractor.dependencies_of(definition) == {v2}


def test_unversioned_reference_matches_all_versions():
    v1 = structure_definition(BASE + "dep", version="1.0.0")
    v2 = structure_definition(BASE + "dep", version="2.0.0")
    definition = structure_definition(BASE + "main", base=BASE + "dep")
    extractor = StructureGraphExtractor([v1, v2, definition])

    assert extractor.dependencies_of(definition) == {v1, v2}


def test_transitive_and_each_definition_once():
    a = structure_definition(BASE + "a", base=BASE + "b", elements=[{"path": "X", "type": [{"profile": [BASE + "c"]}]}])
    b = structure_definition(BASE + "b", base=BASE + "c")
    c = structure_definition(BASE + "c")
    extractor = StructureGraphExtractor([a, b, c])

    dependencies = extractor.dependencies_of(a)
    assert dependencies == {b, c}
    assert a not in dependencies


def test_cycle_terminates_and_excludes_self():
    a = structure_definition(BASE + "a", base=BASE + "b")
    b = structure_definition(BASE + "b", base=BASE + "a")
    extractor = StructureGraphExtractor([a, b])

    assert extractor.dependencies_of(a) == {b}
    assert extractor.dependencies_of(b) == {a}


def test_other_version_of_same_url_is_a_dependency():
    v1 = structure_definition(BASE + "x", version="1.0.0", base="http://hl7.org/fhir/StructureDefinition/Observation")
    v2 = structure_definition(BASE + "x", version="2.0.0", base=BASE + "x|1.0.0")
    extractor = StructureGraphExtractor([v1, v2])

    assert extractor.dependencies_of(v2) == {v1}
    assert extractor.dependencies_of(v1) == set()


def test_missing_reference_is_ignored_with_warning(caplog):
    definition = structure_definition(
        BASE + "main",
        base="http://hl7.org/fhir/StructureDefinition/Observation",
        elements=[{"path": "Observation.subject", "type": [{"code": "Reference", "targetProfile": [BASE + "gone"]}]}],
    )
    extractor = StructureGraphExtractor([definition])
    with caplog.at_level(logging.WARNING, logger="structure.graph"):
        assert extractor.dependencies_of(definition) == set()
        assert extractor.dependencies_of(definition) == set()

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "Observation" in warnings[0].getMessage()
    assert BASE + "gone" in warnings[0].getMessage()


def test_value_sets_needed_filters_strength_and_ignores_snapshot():
    definition = structure_definition(
        BASE + "main",
        elements=[
            {"path": "A", "binding": {"strength": "required", "valueSet": "http://vs/required"}},
            {"path": "B", "binding": {"strength": "example", "valueSet": "http://vs/example"}},
            {"path": "C", "binding": {"strength": "extensible"}},
        ],
        snapshot=[{"path": "D", "binding": {"strength": "required", "valueSet": "http://vs/from-base"}}],
    )

    needed = StructureGraphExtractor.value_sets_needed(
        [definition], [BindingStrength.REQUIRED, BindingStrength.EXTENSIBLE]
    )
    assert needed == {"http://vs/required"}


def test_value_sets_for_package_includes_dependencies():
    dep = structure_definition(
        BASE + "dep", elements=[{"path": "A", "binding": {"strength": "required", "valueSet": "http://vs/dep"}}]
    )
    main = structure_definition(
        BASE + "main",
        base=BASE + "dep",
        elements=[{"path": "B", "binding": {"strength": "preferred", "valueSet": "http://vs/main|1.0.0"}}],
    )
    root = make_package("root", "1.0.0", {"dep": "1.0.0"}, resources=[main.data])
    dependency = make_package("dep", "1.0.0", resources=[dep.data])
    resolved = ResolvedPackageSet(root, [dependency])
    extractor = StructureGraphExtractor.for_package_set(resolved)

    needed = extractor.value_sets_for_package(resolved, list(BindingStrength))
    assert needed == {"http://vs/dep", "http://vs/main|1.0.0"}


def test_find_value_sets_warns_once_about_missing(caplog):
    found_by_url = value_set("http://vs/a")
    found_by_canonical = value_set("http://vs/b", version="2.0.0")
    other = value_set("http://vs/other")

    with caplog.at_level(logging.WARNING, logger="structure.graph"):
        found = StructureGraphExtractor.find_value_sets(
            {"http://vs/a", "http://vs/b|2.0.0", "http://vs/z", "http://vs/m"},
            [found_by_url, found_by_canonical, other],
            label="root|1.0.0",
        )

    assert found == [found_by_url, found_by_canonical]
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "[http://vs/m, http://vs/z]" in warnings[0].getMessage()


def test_find_value_sets_fallback_suppresses_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="structure.graph"):
        StructureGraphExtractor.find_value_sets({"http://core/vs"}, [], fallback=lambda ref: object())
    assert not caplog.records
