"""One preparation run: resolve packages, expand needed ValueSets, generate snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cli_config import ValidatedConfig
from common.logging_utils import extra_context, Timer
from filecache.kinds import PACKAGE_KIND, STRUCTURE_DEFINITION_KIND, VALUE_SET_KIND
from filecache.store import ContentCache
from registry.cached import CachingPackageClient
from registry.client import PackageRegistryClient
from structure.graph import StructureGraphExtractor
from structure.snapshots import (
    CachingSnapshotGenerator,
    ModifyingSnapshotGenerator,
    SnapshotEngine,
    generate_snapshots,
)
from terminology.client import TerminologyServerClient
from terminology.expansion import (
    CachingValueSetExpander,
    ModifyingValueSetExpander,
    StarVersionExpander,
    expand_all,
)
from validation_package.resolved import ResolvedPackageSet
from validation_package.resolver import PackageResolver
from validation_package.resources import StructureDefinition, ValueSet

logger = logging.getLogger(__name__)


@dataclass
class PreparedPackage:
    """Everything prepared for one root package."""
    package_set: ResolvedPackageSet
    needed_value_sets: List[str] = field(default_factory=list)
    missing_value_sets: List[str] = field(default_factory=list)
    expanded_value_sets: List[ValueSet] = field(default_factory=list)
    snapshots: Dict[str, StructureDefinition] = field(default_factory=dict)

    def to_report(self) -> Dict[str, Any]:
        resources = self.package_set.root_resources()
        return {
            "package": str(self.package_set.identifier),
            "dependencies": [str(p.identifier) for p in self.package_set.dependencies],
            "resources": {
                "CodeSystem": len(resources.code_systems),
                "NamingSystem": len(resources.naming_systems),
                "StructureDefinition": len(resources.structure_definitions),
                "ValueSet": len(resources.value_sets),
            },
            "valueSets": {
                "needed": self.needed_value_sets,
                "missing": self.missing_value_sets,
                "expanded": sorted(vs.canonical for vs in self.expanded_value_sets),
            },
            "snapshots": sorted(self.snapshots),
        }


@dataclass
class PreparationResult:
    packages: List[PreparedPackage] = field(default_factory=list)
    expansion_skipped: bool = False
    snapshots_skipped: bool = False

    def to_report(self) -> Dict[str, Any]:
        """JSON-serializable summary of the run."""
        return {
            "packages": [p.to_report() for p in self.packages],
            "expansionSkipped": self.expansion_skipped,
            "snapshotsSkipped": self.snapshots_skipped,
        }


def build_package_client(validated: ValidatedConfig) -> CachingPackageClient:
    """Registry client with the package cache in front of it."""
    config = validated.config
    registry = PackageRegistryClient(
        config.package_server_base_url,
        session=validated.package_session,
        timeout=(config.package_client_timeout_connect, config.package_client_timeout_read),
    )
    cache = ContentCache(config.package_cache_folder, PACKAGE_KIND, validated.codec)
    return CachingPackageClient(registry, cache)


def build_terminology_client(validated: ValidatedConfig) -> Optional[TerminologyServerClient]:
    """Terminology server client, or None if no server is configured."""
    config = validated.config
    if not config.expansion_enabled:
        return None
    return TerminologyServerClient(
        config.value_set_expansion_server_base_url,
        session=validated.terminology_session,
        timeout=(config.value_set_expansion_client_timeout_connect, config.value_set_expansion_client_timeout_read),
    )


def _missing(needed: List[str], found: List[ValueSet]) -> List[str]:
    found_keys = {key for vs in found for key in (vs.url, vs.canonical)}
    return sorted(ref for ref in needed if ref not in found_keys)


def prepare(
    validated: ValidatedConfig,
    *,
    package_client,
    terminology_client=None,
    snapshot_engine: Optional[SnapshotEngine] = None,
) -> PreparationResult:
    """Run resolution, expansion and snapshot generation for the configured packages.

    Args:
        validated: Parsed configuration.
        package_client: Client with ``list_versions`` and ``download``,
            typically from build_package_client.
        terminology_client: Terminology server client; expansion is skipped if None.
        snapshot_engine: External snapshot generator; snapshots are skipped if None.

    Raises:
        PackageResolutionError: If a package cannot be resolved.
        ValueSetExpansionError: If a needed ValueSet cannot be expanded.
        CacheCorruptionError: If a cache entry cannot be decoded.
    """
    config = validated.config
    result = PreparationResult(
        expansion_skipped=terminology_client is None,
        snapshots_skipped=snapshot_engine is None,
    )

    with Timer() as timer:
        package_sets = PackageResolver(package_client, validated.no_download).resolve(validated.packages)
    logger.info(
        "Resolved %d validation packages",
        len(package_sets),
        extra=extra_context(event="resolve", component="preparation", duration_ms=timer.duration_ms()),
    )

    expander = None
    if terminology_client is not None:
        expander = CachingValueSetExpander(
            ModifyingValueSetExpander(StarVersionExpander(terminology_client), validated.value_set_pipeline),
            ContentCache(
                config.value_set_cache_folder,
                VALUE_SET_KIND,
                validated.codec,
                config.value_set_cache_draft_resources,
            ),
        )
    else:
        logger.info("No terminology server configured, not expanding ValueSets")

    snapshot_generator = None
    if snapshot_engine is not None:
        snapshot_generator = CachingSnapshotGenerator(
            ModifyingSnapshotGenerator(snapshot_engine, validated.structure_definition_pipeline),
            ContentCache(
                config.structure_definition_cache_folder,
                STRUCTURE_DEFINITION_KIND,
                validated.codec,
                config.structure_definition_cache_draft_resources,
            ),
        )
    else:
        logger.info("No snapshot engine configured, not generating snapshots")

    for package_set in package_sets:
        package_set.parse_resources()
        extractor = StructureGraphExtractor.for_package_set(package_set)
        needed = sorted(extractor.value_sets_for_package(package_set, validated.binding_strengths))
        value_sets = extractor.find_value_sets(needed, package_set.all_value_sets, label=str(package_set.identifier))

        prepared = PreparedPackage(
            package_set=package_set,
            needed_value_sets=needed,
            missing_value_sets=_missing(needed, value_sets),
        )
        if expander is not None:
            prepared.expanded_value_sets = expand_all(value_sets, expander)
        if snapshot_generator is not None:
            prepared.snapshots = generate_snapshots(package_set, snapshot_generator, extractor)

        logger.info(
            "Prepared %s: %d ValueSets expanded, %d snapshots",
            package_set.identifier,
            len(prepared.expanded_value_sets),
            len(prepared.snapshots),
        )
        result.packages.append(prepared)

    return result
