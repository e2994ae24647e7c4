"""Version resolvers for validation package identifiers."""

from .wildcard import CatalogSource, WildcardVersionResolver

__all__ = [
    "CatalogSource",
    "WildcardVersionResolver",
]
