"""Resource modifiers applied around ValueSet expansion and snapshot generation."""

from .base import Modifier, ModifierPipeline
from .registry import build_structure_definition_pipeline, build_value_set_pipeline

__all__ = [
    "Modifier",
    "ModifierPipeline",
    "build_structure_definition_pipeline",
    "build_value_set_pipeline",
]
