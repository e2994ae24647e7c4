"""Exception hierarchy shared by all igprep components."""

from __future__ import annotations

from typing import Any, Optional


class IgPrepError(Exception):
    """Base class for all errors raised by igprep."""


class ConfigurationError(IgPrepError):
    """Invalid configuration detected before any network activity."""


class TransportError(IgPrepError):
    """A remote server could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, *, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PackageFormatError(IgPrepError):
    """A downloaded package archive or its manifest could not be read."""


class PackageResolutionError(IgPrepError):
    """Resolving a validation package or one of its dependencies failed."""

    def __init__(self, identifier: Any, cause: Optional[BaseException] = None):
        message = f"Unable to resolve validation package {identifier}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.identifier = identifier
        self.cause = cause


class CacheCorruptionError(IgPrepError):
    """A cache entry exists but cannot be decoded."""

    def __init__(self, key: Any, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"Cache entry {key} at {path} could not be decoded: {cause}")
        self.key = key
        self.path = path
        self.cause = cause


class ValueSetExpansionError(IgPrepError):
    """Expanding a needed ValueSet failed."""

    def __init__(self, canonical: str, cause: Optional[BaseException] = None):
        super().__init__(f"Unable to expand ValueSet {canonical}: {cause}")
        self.canonical = canonical
        self.cause = cause
