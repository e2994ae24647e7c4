"""Version-keyed, compressed file system cache."""

from .codecs import CODECS, Codec, get_codec
from .store import CacheKey, ContentCache, ResourceKind

__all__ = ["CODECS", "Codec", "get_codec", "CacheKey", "ContentCache", "ResourceKind"]
