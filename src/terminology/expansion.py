"""ValueSet expansion chain: star versions, modifiers and the file system cache.

Production wiring is
``CachingValueSetExpander(ModifyingValueSetExpander(StarVersionExpander(client)))``.
Every expander has the same ``expand(value_set)`` method, so stages can be
left out or tested on their own.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

from common.errors import CacheCorruptionError, IgPrepError, ValueSetExpansionError
from common.logging_utils import extra_context
from filecache.store import ContentCache
from modifiers.base import ModifierPipeline
from validation_package.resources import ValueSet

from .client import UrlAndVersion

logger = logging.getLogger(__name__)


class ValueSetExpander(Protocol):
    def expand(self, value_set: ValueSet) -> ValueSet:
        ...


class StarVersionExpander:
    """Expand ``version: "*"`` includes once per code system version the server knows.

    Applies to value sets with exactly one include whose version is ``*``;
    the per-version expansions are concatenated in ascending version order
    and every entry is tagged with its version. Other value sets go to the
    delegate unchanged.
    """

    def __init__(self, delegate):
        self.delegate = delegate

    @staticmethod
    def star_system(value_set: ValueSet) -> Optional[str]:
        includes = value_set.includes()
        if len(includes) != 1:
            return None
        include = includes[0]
        if include.get("version") == "*" and include.get("system"):
            return include["system"]
        return None

    def supported_code_system_versions(self, url: str) -> List[UrlAndVersion]:
        return self.delegate.supported_code_system_versions(url)

    def expand(self, value_set: ValueSet) -> ValueSet:
        system = self.star_system(value_set)
        if system is None or value_set.has_expansion:
            return self.delegate.expand(value_set)

        versions = sorted(self.supported_code_system_versions(system), key=lambda uv: uv.version)
        contains = []
        for url_and_version in versions:
            contains.extend(self._expand_for_version(value_set, url_and_version))

        result = value_set.copy()
        result.data["expansion"] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "total": len(contains),
            "contains": contains,
        }
        return result

    def _expand_for_version(self, value_set: ValueSet, url_and_version: UrlAndVersion) -> List[dict]:
        logger.debug(
            "Expanding ValueSet %s with version wildcard include for CodeSystem %s|%s",
            value_set.canonical,
            url_and_version.url,
            url_and_version.version,
        )
        single = value_set.copy()
        single.data["compose"]["include"] = [{"system": url_and_version.url, "version": url_and_version.version}]

        expanded = self.delegate.expand(single)
        entries = (expanded.data.get("expansion") or {}).get("contains") or []
        for entry in expanded.expansion_contains():
            entry["version"] = url_and_version.version
        return entries


class ModifyingValueSetExpander:
    """Run the value set modifier pipeline around the delegate's expansion."""

    def __init__(self, delegate: ValueSetExpander, pipeline: ModifierPipeline[ValueSet]):
        self.delegate = delegate
        self.pipeline = pipeline

    def expand(self, value_set: ValueSet) -> ValueSet:
        modified = self.pipeline.pre(value_set)
        expanded = self.delegate.expand(modified)
        return self.pipeline.post(modified, expanded)


class CachingValueSetExpander:
    """Read-through/write-back ContentCache for expansions, keyed by ``url|version``."""

    def __init__(self, delegate: ValueSetExpander, cache: ContentCache[ValueSet]):
        self.delegate = delegate
        self.cache = cache

    def expand(self, value_set: ValueSet) -> ValueSet:
        if value_set.has_expansion:
            logger.debug("ValueSet %s already expanded", value_set.canonical)
            return value_set
        if not value_set.url or not value_set.version:
            raise ValueError(f"ValueSet {value_set.canonical} needs url and version to be cached")

        return self.cache.read_or_create(value_set.url, value_set.version, lambda: self.delegate.expand(value_set))


def expand_all(value_sets: Iterable[ValueSet], expander: ValueSetExpander) -> List[ValueSet]:
    """Expand every value set, in order.

    Raises:
        ValueSetExpansionError: For the first value set that cannot be expanded.
        CacheCorruptionError: If a cached expansion cannot be decoded.
    """
    expanded = []
    for value_set in value_sets:
        try:
            expanded.append(expander.expand(value_set))
        except CacheCorruptionError:
            raise
        except (IgPrepError, OSError, ValueError, KeyError) as exc:
            logger.error(
                "Error while expanding ValueSet %s: %s",
                value_set.canonical,
                exc,
                extra=extra_context(event="expand_failed", component="terminology", target=value_set.canonical),
            )
            raise ValueSetExpansionError(value_set.canonical, exc) from exc
    return expanded
