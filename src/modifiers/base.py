"""Ordered chains of resource transformations."""

from __future__ import annotations

from typing import Generic, Iterable, List, TypeVar

R = TypeVar("R")


class Modifier(Generic[R]):
    """A transformation applied around an external processing step.

    ``pre_transform`` runs before the step (expansion, snapshot generation)
    on the input resource, ``post_transform`` after it with the original
    input and the step's result. Both default to identity. Implementations
    must not mutate their arguments; copy first.
    """

    name = "modifier"

    def pre_transform(self, resource: R) -> R:
        return resource

    def post_transform(self, original: R, result: R) -> R:
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ModifierPipeline(Generic[R]):
    """Apply modifiers in configuration order, each stage receiving the previous output."""

    def __init__(self, modifiers: Iterable[Modifier[R]] = ()):
        self.modifiers: List[Modifier[R]] = list(modifiers)

    def pre(self, resource: R) -> R:
        for modifier in self.modifiers:
            resource = modifier.pre_transform(resource)
        return resource

    def post(self, original: R, result: R) -> R:
        for modifier in self.modifiers:
            result = modifier.post_transform(original, result)
        return result

    def __len__(self) -> int:
        return len(self.modifiers)

    def __repr__(self) -> str:
        return f"ModifierPipeline({self.modifiers!r})"
