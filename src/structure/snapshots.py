"""Snapshot generation chain around an external snapshot engine.

igprep does not merge differentials itself; the engine (for example a
wrapper around a FHIR validator) is injected and only has to implement
``SnapshotEngine``. This module decides which definitions need a snapshot,
applies the pre-snapshot modifiers and caches the results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Protocol

from common.errors import CacheCorruptionError
from filecache.store import ContentCache
from modifiers.base import ModifierPipeline
from validation_package.resolved import ResolvedPackageSet
from validation_package.resources import PublicationStatus, StructureDefinition

from .graph import StructureGraphExtractor

logger = logging.getLogger(__name__)

_WARNING_LEVELS = {"fatal", "error", "warning"}


@dataclass
class SnapshotMessage:
    level: str
    message: str

    def __str__(self) -> str:
        return f"{self.level}: {self.message}"


@dataclass
class SnapshotResult:
    """A definition (with snapshot, if generation worked) and the engine's messages."""
    definition: StructureDefinition
    messages: List[SnapshotMessage] = field(default_factory=list)


class SnapshotEngine(Protocol):
    def generate_snapshot(self, definition: StructureDefinition) -> SnapshotResult:
        ...


class ModifyingSnapshotGenerator:
    """Apply the structure definition modifier pipeline before the engine runs."""

    def __init__(self, delegate: SnapshotEngine, pipeline: ModifierPipeline[StructureDefinition]):
        self.delegate = delegate
        self.pipeline = pipeline

    def generate_snapshot(self, definition: StructureDefinition) -> SnapshotResult:
        return self.delegate.generate_snapshot(self.pipeline.pre(definition))


class CachingSnapshotGenerator:
    """ContentCache in front of a snapshot generator, keyed by ``url|version``."""

    def __init__(self, delegate: SnapshotEngine, cache: ContentCache[StructureDefinition]):
        self.delegate = delegate
        self.cache = cache

    def generate_snapshot(self, definition: StructureDefinition) -> SnapshotResult:
        if definition.has_snapshot:
            logger.debug("StructureDefinition %s has snapshot", definition.canonical)
            return SnapshotResult(definition)
        if not definition.url or not definition.version:
            raise ValueError(f"StructureDefinition {definition.canonical} needs url and version to be cached")

        cached = self.cache.read(self.cache.kind.resource_type, definition.url, definition.version)
        if cached is not None:
            # caller's differential, cached snapshot
            return SnapshotResult(definition.copy().with_snapshot_of(cached))

        result = self.delegate.generate_snapshot(definition)
        if not result.definition.has_snapshot:
            logger.info("Not writing StructureDefinition %s without snapshot to cache", result.definition.canonical)
            return result

        written = self.cache.write(result.definition, definition.url, definition.version)
        return SnapshotResult(written, result.messages)


def _log_messages(definition: StructureDefinition, messages: List[SnapshotMessage]) -> None:
    for m in messages:
        if m.level.lower() in _WARNING_LEVELS:
            logger.warning("%s %s", definition.canonical, m)
        else:
            logger.info("%s %s", definition.canonical, m)


def generate_snapshots(
    resolved: ResolvedPackageSet,
    generator: SnapshotEngine,
    extractor: StructureGraphExtractor,
) -> Dict[str, StructureDefinition]:
    """Generate snapshots for the root package's differential-only definitions.

    Dependencies of each definition are generated first. Every ``url|version``
    is generated at most once. A failing definition is logged and skipped.

    Returns:
        Definitions with snapshot by ``url|version``.
    """
    snapshots: Dict[str, StructureDefinition] = {}

    for diff in resolved.root_resources().structure_definitions:
        if not diff.has_differential or diff.has_snapshot or diff.canonical in snapshots:
            continue

        closure = sorted(extractor.dependencies_of(diff), key=lambda sd: sd.canonical)
        dependencies = [
            sd
            for sd in closure
            if diff.base_definition not in (sd.url, sd.canonical)
        ]
        logger.debug(
            "Generating snapshot for %s, base %s, dependencies [%s]",
            diff.canonical,
            diff.base_definition,
            ", ".join(sorted({sd.canonical for sd in dependencies})),
        )

        different_status = sorted({f"{sd.canonical}: {sd.status}" for sd in dependencies if sd.status != diff.status})
        if diff.status == PublicationStatus.ACTIVE.value and different_status:
            logger.warning(
                "StructureDefinition %s has dependencies with no active status [%s]",
                diff.canonical,
                ", ".join(different_status),
            )

        for sd in closure + [diff]:
            if not sd.has_differential or sd.has_snapshot or sd.canonical in snapshots:
                continue
            try:
                logger.debug("Generating snapshot for %s", sd.canonical)
                result = generator.generate_snapshot(sd)
            except CacheCorruptionError:
                raise
            except Exception as exc:  # engine failures are reported per definition
                logger.error(
                    "Error while generating snapshot for %s: %s - %s", diff.canonical, type(exc).__name__, exc
                )
                continue

            if result.definition.has_snapshot:
                snapshots[result.definition.canonical] = result.definition
            else:
                logger.error("Error while generating snapshot for %s: no snapshot returned from generator", diff.canonical)
            _log_messages(diff, result.messages)

    return snapshots
