"""Module resolution and cross-entity reference analysis."""

from .aliases import AliasTable, read_tsconfig
from .modules import ModuleResolver, commonjs_exports, manifest_main
from .references import (
    EntityIndex,
    ReferenceResolver,
    fallback_entity_id,
    find_matching_entity,
    template_components,
)

__all__ = [
    "AliasTable",
    "EntityIndex",
    "ModuleResolver",
    "ReferenceResolver",
    "commonjs_exports",
    "fallback_entity_id",
    "find_matching_entity",
    "manifest_main",
    "read_tsconfig",
    "template_components",
]
