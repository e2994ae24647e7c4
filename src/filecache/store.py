"""Generic version-keyed file system cache.

One file per ``(resource_type, url, version)`` under a cache root. What is
stored, and how it is identified, is supplied by a ResourceKind, so a
single ContentCache serves packages, ValueSet expansions and
StructureDefinition snapshots alike.

There is no locking: two processes writing the same key race and the
last rename wins. Callers adding concurrency must serialize writes per key.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from common.errors import CacheCorruptionError
from common.logging_utils import extra_context, is_debug_enabled

from .codecs import XZ, Codec

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _sanitize(text: str) -> str:
    safe_text = re.sub(r"[^A-Za-z0-9.\-]", "_", text)
    safe_text = re.sub(r"_+", "_", safe_text).strip("_-.")
    return safe_text[:64] or "x"


@dataclass(frozen=True)
class CacheKey:
    """Identity of one cache slot."""
    resource_type: str
    url: str
    version: str

    def __post_init__(self):
        for name in ("resource_type", "url", "version"):
            if not getattr(self, name):
                raise ValueError(f"cache key {name} must not be empty")

    def file_name(self, suffix: str) -> str:
        """Deterministic file name: readable prefix plus digest of the full key."""
        digest = hashlib.sha256(f"{self.resource_type}\n{self.url}\n{self.version}".encode("utf-8")).hexdigest()
        tail = self.url.rstrip("/").rsplit("/", 1)[-1]
        return f"{_sanitize(tail)}_{_sanitize(self.version)}_{digest[:32]}{suffix}"

    def __str__(self) -> str:
        return f"{self.resource_type} {self.url}|{self.version}"


@dataclass(frozen=True)
class ResourceKind(Generic[T]):
    """Serialization and identity functions for one kind of cached value."""
    resource_type: str
    serialize: Callable[[T], bytes]
    deserialize: Callable[[bytes], T]
    url_of: Callable[[T], Optional[str]]
    version_of: Callable[[T], Optional[str]]
    is_draft: Callable[[T], bool] = lambda value: False


class ContentCache(Generic[T]):
    """File system cache for values of one ResourceKind."""

    def __init__(
        self,
        root: str,
        kind: ResourceKind[T],
        codec: Codec = XZ,
        cache_draft_resources: bool = True,
    ):
        """Initialize the cache.

        Args:
            root: Cache folder, created on first write.
            kind: Serialization and identity functions of the cached values.
            codec: Compression codec, also decides the file name suffix.
            cache_draft_resources: If False, draft values are never written.
        """
        self.root = root
        self.kind = kind
        self.codec = codec
        self.cache_draft_resources = cache_draft_resources

    def path_for(self, key: CacheKey) -> str:
        return os.path.join(self.root, key.file_name(self.codec.suffix))

    def read(self, resource_type: str, url: str, version: str) -> Optional[T]:
        """Return the cached value or None if there is no entry.

        Raises:
            CacheCorruptionError: If an entry exists but cannot be decoded.
        """
        key = CacheKey(resource_type, url, version)
        path = self.path_for(key)
        if not os.path.isfile(path):
            if is_debug_enabled(logger):
                logger.debug(
                    "Cache miss",
                    extra=extra_context(event="cache_miss", component="filecache", target=str(key)),
                )
            return None

        try:
            with self.codec.open_read(path) as f:
                value = self.kind.deserialize(f.read())
        except Exception as exc:  # any decode failure means a corrupt entry
            raise CacheCorruptionError(key, path, exc) from exc

        logger.debug("Read %s from cache %s", key, path)
        return value

    def write(self, value: T, url: Optional[str] = None, version: Optional[str] = None) -> T:
        """Persist value and return the form that was written.

        Draft values are returned unchanged without writing if caching of
        drafts is disabled.
        """
        url = url if url is not None else self.kind.url_of(value)
        version = version if version is not None else self.kind.version_of(value)
        key = CacheKey(self.kind.resource_type, url or "", version or "")

        if not self.cache_draft_resources and self.kind.is_draft(value):
            logger.info("Not writing %s with status draft to cache", key)
            return value

        serialized = self.kind.serialize(value)
        os.makedirs(self.root, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=self.codec.suffix)
        os.close(fd)
        try:
            with self.codec.open_write(tmp_path) as f:
                f.write(serialized)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.debug("Wrote %s to cache %s", key, path)
        return self.kind.deserialize(serialized)

    def read_or_create(self, url: str, version: str, create: Callable[[], T]) -> T:
        """Read the entry for url/version or create, write and return it."""
        cached = self.read(self.kind.resource_type, url, version)
        if cached is not None:
            return cached
        return self.write(create(), url, version)
