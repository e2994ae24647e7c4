"""Streaming compression codecs for cache entries."""

from __future__ import annotations

import gzip
import lzma
from dataclasses import dataclass
from typing import IO, Callable, Dict

from common.errors import ConfigurationError
from constants import CacheCodecs


def _identity_open(path: str, mode: str) -> IO[bytes]:
    return open(path, mode)


@dataclass(frozen=True)
class Codec:
    """File opener plus the file name suffix that identifies it."""
    name: str
    suffix: str
    opener: Callable[[str, str], IO[bytes]]

    def open_write(self, path: str) -> IO[bytes]:
        return self.opener(path, "wb")

    def open_read(self, path: str) -> IO[bytes]:
        return self.opener(path, "rb")


IDENTITY = Codec(CacheCodecs.IDENTITY.value, ".json", _identity_open)
GZIP = Codec(CacheCodecs.GZIP.value, ".json.gz", gzip.open)
XZ = Codec(CacheCodecs.XZ.value, ".json.xz", lzma.open)

CODECS: Dict[str, Codec] = {c.name: c for c in (IDENTITY, GZIP, XZ)}


def get_codec(name: str) -> Codec:
    """Look up a codec by its configuration name.

    Raises:
        ConfigurationError: For unknown codec names.
    """
    try:
        return CODECS[name.strip().lower()]
    except KeyError as exc:
        raise ConfigurationError(
            f"Unknown cache codec '{name}', expected one of {', '.join(sorted(CODECS))}"
        ) from exc
